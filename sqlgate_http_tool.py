"""
title: sqlgate (HTTP)
version: 1.0.0
license: MIT
description: Call declared sqlgate endpoints over HTTP (GET -> query string, DELETE/POST/PUT -> JSON body)
requirements: requests
"""

import json
from typing import Any, Dict, Optional, Tuple
from pydantic import BaseModel, Field
import requests

VERBS = ("GET", "DELETE", "POST", "PUT")


class Tools:
    # ---------------- Valves ----------------
    class Valves(BaseModel):
        base_url: str = Field(
            default="http://127.0.0.1:8080",
            description="sqlgate base URL",
        )
        basic_auth_user: str = Field(
            default="", description="Basic auth user (optional, e.g. behind a proxy)"
        )
        basic_auth_pass: str = Field(
            default="", description="Basic auth password (optional)"
        )
        timeout_s: int = Field(default=30, description="HTTP timeout (seconds)")

    def __init__(self):
        self.valves = self.Valves()

    # ---------------- intern ----------------
    def _auth(self) -> Optional[Tuple[str, str]]:
        if self.valves.basic_auth_user:
            return (self.valves.basic_auth_user, self.valves.basic_auth_pass or "")
        return None

    def _url(self, entity: str, entity_method: str) -> str:
        return f"{self.valves.base_url.rstrip('/')}/{entity}/{entity_method}"

    @staticmethod
    def _parse(text: str) -> Any:
        try:
            return json.loads(text)
        except ValueError:
            return text

    # ---------------- API ----------------
    def call(self, entity: str, entity_method: str, verb: str = "GET", **params: Any) -> Dict[str, Any]:
        verb = verb.upper()
        if verb not in VERBS:
            raise ValueError(f"Unsupported verb '{verb}', expected one of {', '.join(VERBS)}")
        values = {k: str(v) for k, v in params.items()}
        kwargs: Dict[str, Any] = {"timeout": self.valves.timeout_s, "auth": self._auth()}
        if verb == "GET":
            kwargs["params"] = values
        else:
            kwargs["json"] = values
        r = requests.request(verb, self._url(entity, entity_method), **kwargs)
        if r.status_code >= 400:
            data = self._parse(r.text)
            error = data.get("error") if isinstance(data, dict) else None
            return {"ok": False, "status": r.status_code, "error": error or r.text or "unknown error"}
        return {"ok": True, "status": r.status_code, "result": self._parse(r.text)}
