from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.session_secret, salt="budget-csrf-token")


def generate_csrf_token(user_id: int) -> str:
    return _serializer().dumps({"u": user_id})


def validate_csrf_token(
    token: Optional[str], user_id: int, max_age_hours: Optional[int] = None
) -> bool:
    """Check the signature, the owning user and the token age.

    The signing timestamp is embedded by the serializer, so expiry is
    enforced by ``loads(max_age=...)`` alone.
    """
    if not token:
        return False
    if max_age_hours is None:
        max_age_hours = get_settings().csrf_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        return False
    return data.get("u") == user_id
