import logging
from typing import Optional, Pattern, Tuple

from apiping.bench.data_gen import DataGenerator

logger = logging.getLogger(__name__)


class EndpointResolver:
    """
    Turns a path template plus its operation into a pingable url.

    Every required parameter, and every path parameter regardless of its flag,
    gets a synthesized value substituted for its first "{name}" placeholder.
    An operation is rejected (ok=False) when:
      - the path filter does not match the original template
      - its request body is required
      - one of those parameters has no schema or an unsupported type
    """

    def __init__(self, base_url: str, data_gen: DataGenerator, path_filter: Optional[Pattern] = None):
        self.base_url = base_url
        self.data_gen = data_gen
        self.path_filter = path_filter

    def resolve(self, path: str, operation) -> Tuple[str, bool]:
        if self.path_filter is not None and not self.path_filter.search(path):
            return "", False
        if operation.request_body_required:
            return "", False

        ok = True
        resolved = path
        for param in operation.parameters:
            if not (param.required or param.location.lower() == "path"):
                continue
            value = self.data_gen.synthesize(param.schema)
            if value is None:
                # keep substituting the rest, the operation is never dispatched anyway
                ok = False
                continue
            if value != "":
                resolved = resolved.replace("{" + param.name + "}", value, 1)

        if not ok:
            logger.debug("Skipping %s %s: unsupported parameter", operation.method, path)
        return self.base_url + resolved, ok

