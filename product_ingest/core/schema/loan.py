"""
Loan product catalog: a compact four-attribute price list.
"""

from .catalog import CatalogSchema, FieldKind, FieldRole, FieldSpec, register_schema

LOAN_SCHEMA = register_schema(
    CatalogSchema(
        name="loan",
        identifier_column="ProductID",
        fields=[
            FieldSpec(name="ProductName", kind=FieldKind.STRING, required=True, max_length=255),
            FieldSpec(name="LoanStartDate", kind=FieldKind.DATE, required=True),
            FieldSpec(name="WithdrawnDate", kind=FieldKind.DATE),
            FieldSpec(name="Pricing", kind=FieldKind.DECIMAL, required=True, role=FieldRole.PERCENTAGE),
        ],
        price_field="Pricing",
        withdrawal_field="WithdrawnDate",
        name_field="ProductName",
        compared_fields=["Pricing", "WithdrawnDate", "ProductName", "LoanStartDate"],
    )
)
