from datetime import datetime, timedelta, timezone

import jwt

from college_tracker.dynamodb.secrets_table import SecretsTable
from college_tracker.utils.base_types import AccessTokenId, UserId

ACCESS_TOKEN_EXPIRE_HOURS = 12


class JwtWrapper:
    def __init__(self) -> None:
        pass

    def create_access_token(self, user_id: UserId, secrets_table: SecretsTable) -> AccessTokenId:
        expire = datetime.now(timezone.utc) + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
        to_encode = {"exp": expire, "sub": user_id}
        jwt_secret = secrets_table.get_jwt_secret_key()
        return AccessTokenId(jwt.encode(to_encode, jwt_secret, algorithm="HS256"))

    def verify_token(self, token: str, secrets_table: SecretsTable) -> dict | None:
        try:
            jwt_secret = secrets_table.get_jwt_secret_key()
            payload = jwt.decode(token, jwt_secret, algorithms=["HS256"])
            return payload
        except jwt.PyJWTError:
            return None
        except KeyError:
            return None
