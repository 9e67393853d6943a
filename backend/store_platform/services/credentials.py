import base64
import secrets
from dataclasses import dataclass, field

from store_platform.services.manifests import (
    ADMIN_PASSWORD_KEY,
    MANAGED_BY,
    MYSQL_SECRET_NAME,
    WORDPRESS_KEY_NAMES,
    WORDPRESS_SECRET_NAME,
)


def generate_password(length: int = 32) -> str:
    return secrets.token_hex(length)[:length]


def generate_salt(length: int = 64) -> str:
    return base64.b64encode(secrets.token_bytes(length)).decode("ascii")[:length]


@dataclass
class StoreSecrets:
    mysql_root_password: str
    mysql_password: str
    admin_password: str
    wordpress_keys: dict[str, str] = field(default_factory=dict)


def generate_store_secrets() -> StoreSecrets:
    return StoreSecrets(
        mysql_root_password=generate_password(32),
        mysql_password=generate_password(32),
        admin_password=generate_password(16),
        wordpress_keys={name: generate_salt() for name in WORDPRESS_KEY_NAMES},
    )


def build_mysql_secret(namespace: str, store_secrets: StoreSecrets) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": MYSQL_SECRET_NAME,
            "namespace": namespace,
            "labels": {"app.kubernetes.io/managed-by": MANAGED_BY},
        },
        "type": "Opaque",
        "stringData": {
            "root-password": store_secrets.mysql_root_password,
            "wordpress-password": store_secrets.mysql_password,
        },
    }


def build_wordpress_secret(namespace: str, store_secrets: StoreSecrets) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": WORDPRESS_SECRET_NAME,
            "namespace": namespace,
            "labels": {"app.kubernetes.io/managed-by": MANAGED_BY},
        },
        "type": "Opaque",
        "stringData": {ADMIN_PASSWORD_KEY: store_secrets.admin_password, **store_secrets.wordpress_keys},
    }
