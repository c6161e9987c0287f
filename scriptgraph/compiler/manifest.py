"""
scriptgraph Compiler — Manifest
================================
Builds the appsscript.json descriptor from the validator's scopes and the
deployment settings.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

from ..config import Settings
from .ir import CompilerOptions

logger = logging.getLogger(__name__)


class ManifestBuilder:

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()

    def build(self, required_scopes: Iterable[str], options: CompilerOptions) -> Dict[str, Any]:
        scopes = list(dict.fromkeys(required_scopes))
        logger.debug(f"Manifest with {len(scopes)} OAuth scope(s)")
        return {
            "timeZone": options.timezone or self.settings.timezone,
            "dependencies": {},
            "exceptionLogging": "STACKDRIVER",
            "oauthScopes": scopes,
            "runtimeVersion": self.settings.runtime_version,
            "webapp": {
                "access": self.settings.webapp_access,
                "executeAs": self.settings.webapp_execute_as,
            },
            "executionApi": {
                "access": self.settings.execution_api_access,
            },
        }


__all__ = ["ManifestBuilder"]
