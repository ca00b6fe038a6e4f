#!/usr/bin/env python3
"""
HTTP-Gateway: /{entity}/{entity_method} -> parametrisierte SQL-Abfrage.
- Konfiguration: JSON-Datei (SQLGATE_CONFIG), Endpunkte: JSON-Datei (SQLGATE_ENDPOINTS)
- STDERR: alle Logs
- Fehler beim Start (Config, Endpunkte) beenden den Prozess.
"""

import sys
import os
import logging
from dotenv import load_dotenv

# ===== Env & Logging =====
load_dotenv()
logging.basicConfig(
    stream=sys.stderr,
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from sqlgate.server import ConfigError, load_endpoints
from sqlgate.http import serve


def main():
    config_path = os.getenv("SQLGATE_CONFIG", "config.json")
    endpoints_path = os.getenv("SQLGATE_ENDPOINTS", "endpoints.json")
    logging.info("sqlgate starting config=%s endpoints=%s", config_path, endpoints_path)

    try:
        endpoints = load_endpoints(endpoints_path)
        serve(config_path, endpoints)
    except ConfigError as e:
        logging.error("Fatal error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
