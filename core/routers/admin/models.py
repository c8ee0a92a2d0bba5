"""
Admin API Pydantic Models

Request bodies for the admin order endpoints.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ==================== ORDER MODELS ====================

class MarkSentRequest(_CamelModel):
    fulfillment_order_id: str = Field(min_length=1)
    note: Optional[str] = None


class AdminCancelRequest(_CamelModel):
    reason: Optional[str] = None
