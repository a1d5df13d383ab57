from pydantic import BaseModel


class LoginResponse(BaseModel):
    access_token: str | None = None

    class Config:
        extra = "ignore"


class User(BaseModel):
    id: str | int | None = None
    name: str | None = None
    email: str | None = None
    role: str | None = None

    class Config:
        extra = "ignore"


class UserInfo(BaseModel):
    """Response of the current-user call, stored verbatim in the session."""
    user: User | None = None

    class Config:
        extra = "ignore"
