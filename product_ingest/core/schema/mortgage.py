"""
Mortgage product catalog (the lender's full product spreadsheet layout).
"""

from .catalog import BoundedPair, CatalogSchema, FieldKind, FieldRole, FieldSpec, register_schema

TIERS = range(1, 9)


def _string(name: str) -> FieldSpec:
    return FieldSpec(name=name, kind=FieldKind.STRING)


def _integer(name: str, role: FieldRole | None = None) -> FieldSpec:
    return FieldSpec(name=name, kind=FieldKind.INTEGER, role=role)


def _decimal(name: str, role: FieldRole | None = None) -> FieldSpec:
    return FieldSpec(name=name, kind=FieldKind.DECIMAL, role=role)


def _date(name: str) -> FieldSpec:
    return FieldSpec(name=name, kind=FieldKind.DATE)


def _rate_tiers() -> list[FieldSpec]:
    specs = []
    for tier in TIERS:
        specs += [
            _decimal(f"BOE{tier}+/-"),
            _decimal(f"Rate{tier}", FieldRole.PERCENTAGE),
            _string(f"Until{tier}"),
        ]
    return specs


def _erc_tiers() -> list[FieldSpec]:
    specs = []
    for tier in TIERS:
        specs += [
            _decimal(f"ERC Rate{tier}", FieldRole.PERCENTAGE),
            _string(f"ERC Until{tier}"),
        ]
    return specs


def _ufss_codes() -> list[FieldSpec]:
    return [
        _string(f"UFSS {repayment} Product Code ({brand})")
        for brand in ("CGM", "MOR", "LBM", "BMG")
        for repayment in ("Interest Only", "Repayment")
    ]


MORTGAGE_FIELDS = [
    _date("Launch Date"),
    _string("Brand"),
    _date("Withdraw Date"),
    _string("Withdraw Code"),
    _string("Channel Type"),
    _string("Customer Type"),
    _decimal("Term", FieldRole.TERM),
    _string("Type"),
    *_rate_tiers(),
    _integer("Product Fee (£)", FieldRole.FEE),
    _integer("Product Fee (%)"),
    _integer("Min Loan", FieldRole.FEE),
    _integer("Max Loan", FieldRole.FEE),
    _integer("Min LTV", FieldRole.PERCENTAGE),
    _integer("Max LTV", FieldRole.PERCENTAGE),
    _string("Additional info"),
    _string("Must Complete By"),
    _string("Product Fee Acknum"),
    _decimal("Repayment APR", FieldRole.PERCENTAGE),
    _string("Scheme Type"),
    _string("Portable Product"),
    _integer("Panel Number", FieldRole.FEE),
    _string("Payee Number"),
    _string("Interest Calculation"),
    _string("Link to HVR / HHVR"),
    _string("Refund of Val"),
    _string("Val Refund Acknum"),
    _string("Free Val"),
    _string("Free Conveyancing"),
    _string("DAF to be waived"),
    _string("HLC Free"),
    _integer("Cashback (£)", FieldRole.FEE),
    _string("Cashback (%)"),
    _string("Cashback Acknum"),
    _string("Proc Fee Code"),
    _string("Proc Fee Narrative"),
    _string("Tied Insurance Free Format Text"),
    _string("Tied Non Insurance Free Format Text"),
    _string("Tied Incentivised Free Format Text"),
    _string("Narrative"),
    _string("Best Credit Score Applicable"),
    _string("Worst Credit Score Applicable"),
    _string("CarbonOffset (%)"),
    _string("Calculator"),
    _integer("Extras"),
    _string("BERR (Government Reporting)"),
    *_erc_tiers(),
    _integer("Cashback Minimum Amount"),
    _integer("Cashback Maximum Amount"),
    _string("Cashback Type"),
    _string("Repayment Fees"),
    _string("Portable Tied Non Insurance Free Format Text"),
    _string("Portable Tied Incentivised Free Format Text"),
    *_ufss_codes(),
    _string("Account Type"),
    _string("Current Product Cessation Type"),
    _integer("Risk Type"),
    _string("Product String"),
    _string("Withdrawn SOLAR code"),
    _string("SOLAR CODE"),
    _integer("CHAPS Fee", FieldRole.FEE),
    _string("Channel Type / Category"),
    _string("Core / Exclusive"),
    _string("Offset Available"),
    _string("CI"),
    _string("IO"),
    _integer("ERC Term (Yrs)"),
    _string("Individual LOP"),
    _string("ERC Code"),
    _string("Complete By"),
    _string("MPET Valuation"),
    _string("MPET Legal"),
    _string("Core"),
    _string("IRLID"),
    _string("Interest Rate Code"),
    _integer("Mortgage Type"),
]

MORTGAGE_SCHEMA = register_schema(
    CatalogSchema(
        name="mortgage",
        identifier_column="MSP-LBG Product Code",
        fields=MORTGAGE_FIELDS,
        bounded_pairs=[
            BoundedPair(min_field="Min Loan", max_field="Max Loan"),
            BoundedPair(min_field="Min LTV", max_field="Max LTV"),
            BoundedPair(min_field="Cashback Minimum Amount", max_field="Cashback Maximum Amount"),
        ],
        price_field="Rate1",
        withdrawal_field="Withdraw Date",
        display_fields=["Brand", "Type"],
    )
)
