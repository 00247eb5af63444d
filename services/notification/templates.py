from typing import Dict, Optional, Tuple


# In-code templates for now; later swap this module with DB-backed store.
# Key format: "{message_kind}.{channel}.{locale}"
# Email templates are (subject, body); SMS templates are a single body.
TEMPLATES: Dict[str, object] = {
    "email_verification.email.en": (
        "Verify your Avigate account",
        "Hi {first_name},\n\n"
        "Your Avigate verification code is: {code}\n\n"
        "This code expires in {expiry_minutes} minutes.\n"
        "If you did not create an account, ignore this email.",
    ),
    "login_otp.email.en": (
        "Your Avigate login code",
        "Hi {first_name},\n\n"
        "Your login code is: {code}\n\n"
        "This code expires in {expiry_minutes} minutes.\n"
        "If you did not try to log in, ignore this email.",
    ),
    "welcome.email.en": (
        "Welcome to Avigate",
        "Hi {first_name},\n\nYour account is verified. Safe travels!",
    ),
    "phone_verification.sms.en": (
        "Your Avigate phone verification code is {code}. "
        "It expires in {expiry_minutes} minutes."
    ),
}


def get_template(message_kind: str, channel: str, locale: str = "en") -> Optional[object]:
    key = f"{message_kind}.{channel}.{locale}"
    return TEMPLATES.get(key)


def render(template: str, variables: Dict[str, object]) -> str:
    message = template
    for key, value in variables.items():
        message = message.replace(f"{{{key}}}", str(value))
    return message


def render_email(message_kind: str, variables: Dict[str, object], locale: str = "en") -> Tuple[str, str]:
    template = get_template(message_kind, "email", locale)
    if not template:
        raise ValueError(f"No email template for {message_kind}/{locale}")
    subject, body = template
    return render(subject, variables), render(body, variables)


def render_sms(message_kind: str, variables: Dict[str, object], locale: str = "en") -> str:
    template = get_template(message_kind, "sms", locale)
    if not template:
        raise ValueError(f"No sms template for {message_kind}/{locale}")
    return render(template, variables)
