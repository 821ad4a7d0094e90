from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AccessAttemptOut(_CamelModel):
    attempts_remaining: int
    should_ban: bool
    banned_until: int | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"attemptsRemaining": 0, "shouldBan": True, "bannedUntil": 1767225600000}
        }
    )


class BannedIPOut(_CamelModel):
    ip: str
    banned_until: int
    attempts: int


class BannedIPListOut(BaseModel):
    banned_ips: list[BannedIPOut] = Field(alias="bannedIPs")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "bannedIPs": [
                    {"ip": "203.0.113.5", "bannedUntil": 1767225600000, "attempts": 1}
                ]
            }
        },
    )


class UnbanIn(BaseModel):
    ip: str

    @field_validator("ip")
    @classmethod
    def validate_ip(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("IP address is required")
        return cleaned

    model_config = ConfigDict(json_schema_extra={"example": {"ip": "203.0.113.5"}})


class UnbanOut(BaseModel):
    success: bool
    message: str
