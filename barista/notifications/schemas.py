from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NotificationCounts(BaseModel):
    """Pending work items shown on admin dashboards. Replaced wholesale on recount."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    pending_reservations: int = Field(0, ge=0)
    pending_orders: int = Field(0, ge=0)
    new_messages: int = Field(0, ge=0)
    low_stock_items: int = Field(0, ge=0)
    maintenance_alerts: int = Field(0, ge=0)
    system_alerts: int = Field(0, ge=0)

    @property
    def total(self) -> int:
        return (
            self.pending_reservations
            + self.pending_orders
            + self.new_messages
            + self.low_stock_items
            + self.maintenance_alerts
            + self.system_alerts
        )

    def to_payload(self) -> dict:
        """camelCase JSON body including the derived total."""
        payload = self.model_dump(by_alias=True)
        payload["total"] = self.total
        return payload
