import math
from typing import Any

import orjson


def _finite(value: Any) -> Any:
    # JSON has no Infinity; profit factor can legitimately be infinite.
    if isinstance(value, float) and math.isinf(value):
        return "inf" if value > 0 else "-inf"
    if isinstance(value, dict):
        return {k: _finite(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_finite(v) for v in value]
    return value


def dumps(content: Any, indent: bool = False) -> bytes:
    """
    High-performance JSON encoding using orjson.
    """
    option = orjson.OPT_SERIALIZE_NUMPY
    if indent:
        option |= orjson.OPT_INDENT_2
    return orjson.dumps(_finite(content), option=option)
