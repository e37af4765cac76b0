from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
import os
import uuid

app = FastAPI(title="Mock Green API Server", version="1.0.0")
# Instances accepted by the mock: "<idInstance>:<apiTokenInstance>,..."
INSTANCES = dict(
    pair.split(":", 1)
    for pair in os.environ.get("MOCK_GREEN_API_INSTANCES", "1101000001:test-token").split(",")
    if ":" in pair
)
SENT_MESSAGES: list[dict] = []


class SendMessageBody(BaseModel):
    chatId: str
    message: str


def _check_instance(id_instance: str, api_token: str) -> None:
    if INSTANCES.get(id_instance) != api_token:
        raise HTTPException(status_code=401, detail="unknown instance or token")


@app.get("/health")
def health(): return {"status": "ok"}

@app.get("/waInstance{id_instance}/getStateInstance/{api_token}")
def get_state(id_instance: str, api_token: str):
    _check_instance(id_instance, api_token)
    return {"stateInstance": "authorized"}

@app.post("/waInstance{id_instance}/sendMessage/{api_token}")
def send_message(id_instance: str, api_token: str, body: SendMessageBody):
    _check_instance(id_instance, api_token)
    if not body.chatId.endswith("@c.us"):
        raise HTTPException(status_code=400, detail="chatId must end with @c.us")
    message_id = uuid.uuid4().hex.upper()
    SENT_MESSAGES.append({"idMessage": message_id, "chatId": body.chatId, "message": body.message})
    return {"idMessage": message_id}

@app.get("/sent")
def sent_messages(): return SENT_MESSAGES
