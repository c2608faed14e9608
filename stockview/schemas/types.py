from decimal import Decimal
from typing import Annotated

from pydantic import BeforeValidator, PlainSerializer

from stockview.decimals import to_decimal, to_decimal_string

# Money and quantity fields: Decimal in memory, plain decimal string on the wire and in storage.
DecimalString = Annotated[
    Decimal,
    BeforeValidator(to_decimal),
    PlainSerializer(to_decimal_string, return_type=str, when_used="json"),
]
