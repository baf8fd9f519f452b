from pydantic import BaseModel


class GoogleAuthUrl(BaseModel):
    google_auth_url: str


class SignInResponse(BaseModel):
    user_id: int
    email: str
    name: str
    wallet: str
    picture: str | None = None
    token: str
