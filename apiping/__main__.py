import logging
import os
import sys

from apiping.bench.data_gen import DataGenerator
from apiping.bench.plan_runner import PlanRunner
from apiping.export.result_sink import ResultSink
from apiping.sut.config import ConfigError, config_from_env, config_from_yaml
from apiping.sut.factory import ApiFactory
from apiping.sut.openapi_model import SpecError

logger = logging.getLogger("apiping")


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(
        level=os.getenv("APING_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        # optional single argument: a YAML plan file, otherwise APING_* env vars
        config = config_from_yaml(argv[0]) if argv else config_from_env()
        runner = PlanRunner(factory=ApiFactory(), data_gen=DataGenerator(), result_sink=ResultSink())
        runner.run(config)
    except (ConfigError, SpecError) as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
