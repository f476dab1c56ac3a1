"""Schema for messages on the live activity feed.

Messages are narrowed on (topic, type) before anything reaches the
pipeline. Only activity/trades messages carry a validated payload; every
other combination parses as IgnoredFeedMessage.
"""

import json
from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter, field_validator

from polymarket_signal_tracker.ingestor.models import TradeEvent

TRADES_TAG = "activity:trades"
OTHER_TAG = "other"


class TradePayload(BaseModel):
    """Payload of an activity/trades message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    asset: str = Field(min_length=1)
    price: Decimal = Field(ge=0)
    size: Decimal = Field(ge=0)
    side: Literal["BUY", "SELL"] = "BUY"
    proxy_wallet: str = Field(default="", alias="proxyWallet")
    timestamp: int | float | str | None = None
    condition_id: str = Field(default="", alias="conditionId")
    transaction_hash: str = Field(default="", alias="transactionHash")
    outcome: str = ""
    outcome_index: int = Field(default=0, alias="outcomeIndex")
    title: str = ""
    slug: str = ""
    event_slug: str = Field(default="", alias="eventSlug")
    icon: str = ""
    name: str = ""
    pseudonym: str = ""

    @field_validator("side", mode="before")
    @classmethod
    def normalize_side(cls, v: Any) -> str:
        return "SELL" if str(v or "BUY").upper() == "SELL" else "BUY"

    @field_validator(
        "proxy_wallet",
        "condition_id",
        "transaction_hash",
        "outcome",
        "title",
        "slug",
        "event_slug",
        "icon",
        "name",
        "pseudonym",
        mode="before",
    )
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("outcome_index", mode="before")
    @classmethod
    def none_to_zero(cls, v: Any) -> Any:
        return 0 if v is None else v


class TradesMessage(BaseModel):
    """activity/trades message."""

    model_config = ConfigDict(extra="ignore")

    topic: Literal["activity"]
    type: Literal["trades"]
    payload: TradePayload

    def to_trade_event(self) -> TradeEvent:
        data = self.payload.model_dump(by_alias=True)
        data["price"] = str(self.payload.price)
        data["size"] = str(self.payload.size)
        return TradeEvent.from_payload(data)


class IgnoredFeedMessage(BaseModel):
    """Any other topic/type: subscription acks, other activity types."""

    model_config = ConfigDict(extra="allow")

    topic: str | None = None
    type: str | None = None


def _feed_tag(value: Any) -> str:
    if isinstance(value, dict):
        topic, msg_type = value.get("topic"), value.get("type")
    else:
        topic, msg_type = getattr(value, "topic", None), getattr(value, "type", None)
    if topic == "activity" and msg_type == "trades":
        return TRADES_TAG
    return OTHER_TAG


FeedMessage = Annotated[
    Union[
        Annotated[TradesMessage, Tag(TRADES_TAG)],
        Annotated[IgnoredFeedMessage, Tag(OTHER_TAG)],
    ],
    Discriminator(_feed_tag),
]

feed_message_adapter: TypeAdapter[FeedMessage] = TypeAdapter(FeedMessage)


def parse_feed_message(raw: str | bytes) -> TradesMessage | IgnoredFeedMessage:
    """Decode and validate one feed frame.

    Raises:
        ValueError: If the frame is not a JSON object.
        pydantic.ValidationError: If a trades message has an invalid payload.
    """
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Feed frame is not a JSON object")
    return feed_message_adapter.validate_python(data)
