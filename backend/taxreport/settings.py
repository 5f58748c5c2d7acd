"""
Runtime configuration.
Values come from the environment (optionally a .env file) and are read once
at import time.
"""

import os
from dotenv import load_dotenv

load_dotenv()

GRAPH_BASE_URL = os.getenv("GRAPH_BASE_URL", "https://graph.microsoft.com/v1.0").rstrip("/")
GRAPH_TIMEOUT_SECONDS = float(os.getenv("GRAPH_TIMEOUT_SECONDS", "30"))
GRAPH_MAX_ATTEMPTS = int(os.getenv("GRAPH_MAX_ATTEMPTS", "3"))

# Graph returns at most this many messages per search; we never follow @odata.nextLink
SEARCH_PAGE_SIZE = 100

# Header timestamps in rendered reports are shown in this zone
REPORT_TIMEZONE = os.getenv("REPORT_TIMEZONE", "Europe/Zurich")
