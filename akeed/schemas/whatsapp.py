from pydantic import BaseModel, ConfigDict, Field

# Webhook components:
# https://developers.facebook.com/docs/whatsapp/cloud-api/webhooks/components


class WhatsAppButton(BaseModel):
    model_config = ConfigDict(extra="allow")
    payload: str | None = None
    text: str | None = None


class WhatsAppButtonReply(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str | None = None
    title: str | None = None


class WhatsAppInteractive(BaseModel):
    model_config = ConfigDict(extra="allow")
    type: str | None = None
    button_reply: WhatsAppButtonReply | None = None


class WhatsAppMessage(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str | None = None
    type: str | None = None
    button: WhatsAppButton | None = None
    interactive: WhatsAppInteractive | None = None


class WhatsAppStatus(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str | None = None
    status: str | None = None


class WhatsAppChangeValue(BaseModel):
    model_config = ConfigDict(extra="allow")
    messages: list[WhatsAppMessage] = Field(default_factory=list)
    statuses: list[WhatsAppStatus] = Field(default_factory=list)


class WhatsAppChange(BaseModel):
    model_config = ConfigDict(extra="allow")
    field: str | None = None
    value: WhatsAppChangeValue | None = None


class WhatsAppEntry(BaseModel):
    model_config = ConfigDict(extra="allow")
    id: str | None = None
    changes: list[WhatsAppChange] = Field(default_factory=list)


class WhatsAppWebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")
    object: str | None = None
    entry: list[WhatsAppEntry] = Field(default_factory=list)
