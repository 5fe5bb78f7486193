"""
EmailJS REST transport.

One POST per alert, no retries. send() always returns a result dict
({"ok": True, "status_code": 200} or {"ok": False, "error": ...}) and never
raises; a failed dispatch is the caller's to log.
"""

import logging

import requests

from rollertrack.core import config

log = logging.getLogger("rollertrack.email")


class EmailJSClient:
    def __init__(self, api_url: str = None, timeout: int = None, session=None):
        self.api_url = api_url or config.EMAILJS_API_URL
        self.timeout = timeout or config.EMAIL_TIMEOUT_SEC
        self.session = session or requests

    @staticmethod
    def build_payload(notify_config: dict, params: dict) -> dict:
        payload = {
            "service_id": notify_config.get("serviceId"),
            "template_id": notify_config.get("templateId"),
            "user_id": notify_config.get("publicKey"),
            "template_params": params,
        }
        if notify_config.get("privateKey"):
            payload["accessToken"] = notify_config["privateKey"]
        return payload

    def send(self, notify_config: dict, params: dict) -> dict:
        payload = self.build_payload(notify_config or {}, params)
        try:
            resp = self.session.post(self.api_url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning("EmailJS send failed: %s", e)
            return {"ok": False, "error": str(e)}
        if resp.status_code != 200:
            body = (resp.text or "")[:200]
            log.warning("EmailJS rejected send (%d): %s", resp.status_code, body)
            return {"ok": False, "status_code": resp.status_code, "error": body}
        log.info("Alert email sent: %s → %s", (params.get("title") or "")[:60],
                 params.get("to_email"))
        return {"ok": True, "status_code": resp.status_code}
