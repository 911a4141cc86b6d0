from pydantic import BaseModel

DEFAULT_COLOR = "#5865F2"


class CommunitySettings(BaseModel):
    role_id: str | None = None
    prompt_title: str = "Welcome to {servername}!"
    prompt_body: str = (
        "Before you can start chatting in **{servername}**, you need to verify yourself."
        "\n\nClick the **Verify** button below to get started."
    )
    prompt_color: str = DEFAULT_COLOR
    direct_message_title: str = "Verify Your Account"
    direct_message_body: str = (
        "Hi {username}, click the link below to verify yourself in **{servername}**."
        "\n\nThis verification link is secure and will expire in 5 minutes."
    )
    direct_message_color: str = DEFAULT_COLOR
