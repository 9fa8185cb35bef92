# Schema -> single parameter value. Only integer and string schemas can be synthesized.
import random
import string
import time
from typing import Optional

RANDOM_STRING_CHARSET = string.ascii_lowercase + string.ascii_uppercase + string.digits

DEFAULT_INT_MIN = 0
DEFAULT_INT_MAX = 100

# Seeded once per process
_seeded_rand = random.Random(time.time_ns())


class DataGenerator:
    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or _seeded_rand

    def synthesize(self, schema) -> Optional[str]:
        """
        Return one value satisfying the schema as a string, or None when the
        schema is absent or its type cannot be synthesized.
        """
        if schema is None:
            return None
        if schema.type == "integer":
            return self._random_int(schema)
        if schema.type == "string":
            return self.random_string(self._string_length(schema))
        return None

    def random_string(self, length: int) -> str:
        return "".join(self.rng.choice(RANDOM_STRING_CHARSET) for _ in range(length))

    def _random_int(self, schema) -> Optional[str]:
        lo = DEFAULT_INT_MIN if schema.minimum is None else int(schema.minimum)
        hi = DEFAULT_INT_MAX if schema.maximum is None else int(schema.maximum)
        if hi < lo:
            # empty range, nothing valid to draw
            return None
        return str(self.rng.randint(lo, hi))

    @staticmethod
    def _string_length(schema) -> int:
        if schema.max_length is not None:
            return int(schema.max_length)
        if schema.min_length is not None and schema.min_length > 1:
            return int(schema.min_length)
        return 1
