from pydantic import BaseModel, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class StringLimits(BaseModel):
    anonymous_id: int = 255
    session_id: int = 255
    event_name: int = 255
    tool_name: int = 255
    user_agent: int = 512
    locale: int = 32
    timezone: int = 64
    soft_fingerprint: int = 64

class SanitizerRules(BaseModel):
    strings: StringLimits = Field(default_factory=StringLimits)
    max_property_string_length: int = 2000
    max_property_array_length: int = 100
    max_property_depth: int = 5
    max_property_nodes: int = 1000

class IngestionRules(BaseModel):
    max_batch_size: int = 100

class SessionRules(BaseModel):
    timeout_minutes: int = 30

class RateLimitWindow(BaseModel):
    window_seconds: int
    max_attempts: int | None = None

class RateLimitRules(BaseModel):
    login: RateLimitWindow

class AdminCookieRules(BaseModel):
    name: str = "dth_admin_session"
    http_only: bool = True
    same_site: str = "lax"
    path: str = "/"

class AdminRules(BaseModel):
    session_ttl_minutes: int = 60
    password_max_length: int = 256
    cookie: AdminCookieRules = Field(default_factory=AdminCookieRules)

class TransportRules(BaseModel):
    endpoint: str = "/events"
    batch_size: int = 10
    max_outbox: int = 500
    timeout_seconds: float = 5.0

class Rules(BaseModel):
    project: ProjectRules
    ingestion: IngestionRules
    sanitizer: SanitizerRules
    session: SessionRules
    rate_limits: RateLimitRules
    admin: AdminRules
    transport: TransportRules
