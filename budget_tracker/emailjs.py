# budget_tracker/emailjs.py
from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_EMAILJS_URL = "https://api.emailjs.com/api/v1.0/email/send"


@dataclass
class EmailJSSender:
    """Send template emails through the EmailJS REST API."""

    url: str = _EMAILJS_URL
    timeout: float = 10.0

    def _post(self, payload: dict) -> int:
        data = json.dumps(payload).encode()
        logger.debug("EmailJS ▶ POST %s – template %s", self.url, payload["template_id"])
        req = urllib.request.Request(self.url, data=data, method="POST")
        req.add_header("Content-Type", "application/json")
        with urllib.request.urlopen(req, timeout=self.timeout) as resp:
            body = resp.read().decode()
            logger.debug("EmailJS ◀ %s %s", resp.status, body)
            return resp.status

    def send(self, recipient: str, template_params: dict, config: dict) -> bool:
        if not (
            config.get("service_id")
            and config.get("template_id")
            and config.get("public_key")
        ):
            logger.warning("Missing EmailJS configuration; not sending to %s", recipient)
            return False

        payload = {
            "service_id": config["service_id"],
            "template_id": config["template_id"],
            "user_id": config["public_key"],
            "template_params": {**template_params, "to_email": recipient},
        }
        try:
            status = self._post(payload)
        except (urllib.error.URLError, OSError) as exc:
            logger.error("Failed to send email to %s: %s", recipient, exc)
            return False
        if not 200 <= status < 300:
            logger.error("EmailJS returned status %s for %s", status, recipient)
            return False
        logger.info("Email sent to %s", recipient)
        return True
