"""ZeptoMail implementation of NotificationSender.

Uses the template-mail endpoint: the template lives at the provider and is
referenced by alias, the context goes out as merge data. Rendering never
happens in this process.
"""

from config import EmailSettings
from infrastructure.email.protocol import MailMessage
from infrastructure.http_client import HttpClient
from shared.logging import get_logger

log = get_logger(__name__)


class ZeptoMailTemplateSender:
    def __init__(self, settings: EmailSettings, http_client: HttpClient) -> None:
        self._settings = settings
        self._http = http_client

    def _auth_header(self) -> str:
        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"
        return token

    def _payload(self, message: MailMessage) -> dict:
        return {
            "template_alias": message.template,
            "from": {"address": message.from_email, "name": message.from_name},
            "to": [
                {
                    "email_address": {
                        "address": message.to,
                        "name": message.to,
                    }
                }
            ],
            "merge_info": {"subject": message.subject, **message.context},
        }

    async def send(self, message: MailMessage) -> bool:
        if not self._settings.zepto_api_token:
            log.error("email_send_failed", reason="token_not_configured")
            return False

        headers = {
            "Authorization": self._auth_header(),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            response = await self._http.post(
                self._settings.zepto_api_url,
                json=self._payload(message),
                headers=headers,
            )
            if response.status_code in (200, 201, 202):
                log.info(
                    "email_sent",
                    to_email=message.to,
                    template=message.template,
                )
                return True
            log.error(
                "email_send_failed",
                to_email=message.to,
                template=message.template,
                status_code=response.status_code,
                response=response.text[:200],
            )
            return False
        except Exception as e:
            log.error(
                "email_send_error",
                to_email=message.to,
                template=message.template,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
