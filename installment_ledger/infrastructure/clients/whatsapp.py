"""Green API (WhatsApp) HTTP client for sending reminders"""

import httpx

from installment_ledger.config import settings
from installment_ledger.domain.exceptions import MessagingAPIError
from installment_ledger.infrastructure.observability.metrics import whatsapp_send_latency_histogram


class WhatsAppClient:
    """Client for the Green API instance endpoints"""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.green_api_base).rstrip("/")
        self.timeout = timeout or settings.whatsapp_timeout_seconds
        self.transport = transport

    def _url(self, id_instance: str, method: str, api_token_instance: str) -> str:
        return f"{self.base_url}/waInstance{id_instance}/{method}/{api_token_instance}"

    async def send_message(self, id_instance: str, api_token_instance: str, chat_id: str, message: str) -> str:
        """
        Send a text message to a chat id ("79991234567@c.us").

        Returns:
            Green API message id

        Raises:
            MessagingAPIError: On timeout, HTTP errors, or a response without idMessage
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                with whatsapp_send_latency_histogram.time():
                    response = await client.post(
                        self._url(id_instance, "sendMessage", api_token_instance),
                        json={"chatId": chat_id, "message": message},
                    )
                response.raise_for_status()
                message_id = response.json().get("idMessage")

            except httpx.TimeoutException as e:
                raise MessagingAPIError(f"WhatsApp API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise MessagingAPIError(f"WhatsApp API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise MessagingAPIError(f"WhatsApp API unreachable: {e}") from e
            except (ValueError, AttributeError) as e:
                raise MessagingAPIError(f"Invalid response from WhatsApp API: {e}") from e

        if not message_id:
            raise MessagingAPIError("WhatsApp API response has no idMessage")
        return str(message_id)

    async def get_state(self, id_instance: str, api_token_instance: str) -> str:
        """
        Instance state, "authorized" when the merchant's phone is linked.

        Raises:
            MessagingAPIError: On timeout, HTTP errors, or invalid response
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(self._url(id_instance, "getStateInstance", api_token_instance))
                response.raise_for_status()
                return str(response.json()["stateInstance"])

            except httpx.TimeoutException as e:
                raise MessagingAPIError(f"WhatsApp API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise MessagingAPIError(f"WhatsApp API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise MessagingAPIError(f"WhatsApp API unreachable: {e}") from e
            except (KeyError, ValueError, TypeError) as e:
                raise MessagingAPIError(f"Invalid response from WhatsApp API: {e}") from e
