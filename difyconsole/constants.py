from __future__ import annotations

import logging
from pathlib import Path

LOGGER = logging.getLogger("difyconsole")
APP_VERSION = "0.1.0"

APPS_PATH = "/console/api/apps"
DATASETS_PATH = "/console/api/datasets"
APPS_PAGE_LIMIT = 100

ENV_FILE = Path(__file__).resolve().parent.parent / ".env"
