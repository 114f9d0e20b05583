import sys

from svdsgd.config import SVDConfig
from svdsgd.exceptions import SVDError
from svdsgd.scripts.run_pipeline_svd import run_pipeline
from svdsgd.utils.logger import setup_logger

logger = setup_logger(__name__)


def main() -> int:
    try:
        cfg = SVDConfig.from_env()
        run_pipeline(cfg)
    except (SVDError, OSError):
        logger.exception("Run aborted")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
