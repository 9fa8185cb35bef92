import json
import logging
import os

logger = logging.getLogger(__name__)


class ResultSink:
    def write(self, report, out: str = "console") -> None:
        data = report.to_dict()
        if not out or out.lower() == "console":
            print(json.dumps(data, indent=2))
            return

        path = out
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info("Results written to %s", path)
