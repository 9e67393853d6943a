"""Declarative cluster objects for a WooCommerce store.

Every builder is a pure function returning a plain dict that the Kubernetes client accepts
as a request body. Object names are fixed per namespace; the namespace itself is the tenant
boundary.
"""

from dataclasses import dataclass

from store_platform.core.config import Settings

MANAGED_BY = "store-platform"
STORE_ID_LABEL = "store-platform/store-id"
RESTARTED_AT_ANNOTATION = "store-platform/restartedAt"

MYSQL_APP = "mysql"
WORDPRESS_APP = "wordpress"
MYSQL_PVC = "mysql-data"
WORDPRESS_PVC = "wordpress-data"
SETUP_JOB_NAME = "woocommerce-setup"
INGRESS_NAME = "wordpress-ingress"
NETWORK_POLICY_NAME = "store-isolation"
QUOTA_NAME = "store-quota"
LIMIT_RANGE_NAME = "store-limits"

MYSQL_SECRET_NAME = "mysql-credentials"
WORDPRESS_SECRET_NAME = "wordpress-secrets"
ADMIN_PASSWORD_KEY = "admin-password"

WORDPRESS_KEY_NAMES = (
    "AUTH_KEY",
    "SECURE_AUTH_KEY",
    "LOGGED_IN_KEY",
    "NONCE_KEY",
    "AUTH_SALT",
    "SECURE_AUTH_SALT",
    "LOGGED_IN_SALT",
    "NONCE_SALT",
)


@dataclass(frozen=True)
class StoreResourceConfig:
    namespace: str
    slug: str
    store_name: str
    admin_email: str
    store_url: str


def _labels(app: str | None = None) -> dict[str, str]:
    labels = {"app.kubernetes.io/managed-by": MANAGED_BY}
    if app:
        labels["app"] = app
    return labels


def _secret_env(name: str, secret: str, key: str) -> dict:
    return {"name": name, "valueFrom": {"secretKeyRef": {"name": secret, "key": key}}}


def _database_env() -> list[dict]:
    return [
        {"name": "WORDPRESS_DB_HOST", "value": MYSQL_APP},
        {"name": "WORDPRESS_DB_USER", "value": "wordpress"},
        _secret_env("WORDPRESS_DB_PASSWORD", MYSQL_SECRET_NAME, "wordpress-password"),
        {"name": "WORDPRESS_DB_NAME", "value": "wordpress"},
    ]


def _store_env(rc: StoreResourceConfig) -> list[dict]:
    return [
        {"name": "STORE_NAME", "value": rc.store_name},
        {"name": "STORE_URL", "value": rc.store_url},
        {"name": "STORE_ADMIN_EMAIL", "value": rc.admin_email},
        _secret_env("STORE_ADMIN_PASSWORD", WORDPRESS_SECRET_NAME, ADMIN_PASSWORD_KEY),
    ]


def _pvc(namespace: str, name: str, app: str, size: str, settings: Settings) -> dict:
    spec: dict = {
        "accessModes": ["ReadWriteOnce"],
        "resources": {"requests": {"storage": size}},
    }
    if settings.storage_class:
        spec["storageClassName"] = settings.storage_class
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {"name": name, "namespace": namespace, "labels": _labels(app)},
        "spec": spec,
    }


def _cluster_ip_service(namespace: str, app: str, port: int) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": app, "namespace": namespace, "labels": _labels(app)},
        "spec": {
            "type": "ClusterIP",
            "ports": [{"port": port, "targetPort": port}],
            "selector": {"app": app},
        },
    }


def build_namespace(namespace: str, store_id: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {
            "name": namespace,
            "labels": {**_labels(), STORE_ID_LABEL: store_id},
        },
    }


def build_resource_quota(namespace: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ResourceQuota",
        "metadata": {"name": QUOTA_NAME, "namespace": namespace, "labels": _labels()},
        "spec": {
            "hard": {
                "requests.cpu": "2",
                "requests.memory": "2Gi",
                "limits.cpu": "4",
                "limits.memory": "4Gi",
                "requests.storage": "10Gi",
                "persistentvolumeclaims": "4",
                "pods": "10",
            }
        },
    }


def build_limit_range(namespace: str) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "LimitRange",
        "metadata": {"name": LIMIT_RANGE_NAME, "namespace": namespace, "labels": _labels()},
        "spec": {
            "limits": [
                {
                    "type": "Container",
                    "default": {"cpu": "500m", "memory": "512Mi"},
                    "defaultRequest": {"cpu": "100m", "memory": "256Mi"},
                    "max": {"cpu": "2", "memory": "1Gi"},
                    "min": {"cpu": "50m", "memory": "64Mi"},
                },
                {
                    "type": "PersistentVolumeClaim",
                    "max": {"storage": "5Gi"},
                    "min": {"storage": "256Mi"},
                },
            ]
        },
    }


def build_mysql_pvc(namespace: str, settings: Settings) -> dict:
    return _pvc(namespace, MYSQL_PVC, MYSQL_APP, settings.mysql_storage_size, settings)


def build_mysql_deployment(namespace: str, settings: Settings) -> dict:
    ping = {"exec": {"command": ["mysqladmin", "ping", "-h", "localhost"]}}
    container = {
        "name": MYSQL_APP,
        "image": settings.mysql_image,
        "imagePullPolicy": settings.image_pull_policy,
        "ports": [{"containerPort": 3306}],
        "env": [
            _secret_env("MYSQL_ROOT_PASSWORD", MYSQL_SECRET_NAME, "root-password"),
            {"name": "MYSQL_DATABASE", "value": "wordpress"},
            {"name": "MYSQL_USER", "value": "wordpress"},
            _secret_env("MYSQL_PASSWORD", MYSQL_SECRET_NAME, "wordpress-password"),
        ],
        "volumeMounts": [{"name": MYSQL_PVC, "mountPath": "/var/lib/mysql"}],
        "readinessProbe": {**ping, "initialDelaySeconds": 10, "periodSeconds": 5, "timeoutSeconds": 3},
        "livenessProbe": {**ping, "initialDelaySeconds": 30, "periodSeconds": 10, "timeoutSeconds": 3},
        "resources": {
            "requests": {"cpu": "100m", "memory": "256Mi"},
            "limits": {"cpu": "500m", "memory": "512Mi"},
        },
    }
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": MYSQL_APP, "namespace": namespace, "labels": _labels(MYSQL_APP)},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app": MYSQL_APP}},
            "strategy": {"type": "Recreate"},
            "template": {
                "metadata": {"labels": {"app": MYSQL_APP}},
                "spec": {
                    "containers": [container],
                    "volumes": [{"name": MYSQL_PVC, "persistentVolumeClaim": {"claimName": MYSQL_PVC}}],
                },
            },
        },
    }


def build_mysql_service(namespace: str) -> dict:
    return _cluster_ip_service(namespace, MYSQL_APP, 3306)


def build_wordpress_pvc(namespace: str, settings: Settings) -> dict:
    return _pvc(namespace, WORDPRESS_PVC, WORDPRESS_APP, settings.wordpress_storage_size, settings)


def build_wordpress_deployment(rc: StoreResourceConfig, settings: Settings) -> dict:
    probe = {"httpGet": {"path": "/wp-login.php", "port": 80}}
    signing_keys = [_secret_env(f"WORDPRESS_{key}", WORDPRESS_SECRET_NAME, key) for key in WORDPRESS_KEY_NAMES]
    wait_for_mysql = {
        "name": "wait-for-mysql",
        "image": settings.mysql_image,
        "imagePullPolicy": settings.image_pull_policy,
        "command": ["sh", "-c", "until mysqladmin ping -h mysql --silent; do echo waiting for mysql; sleep 2; done"],
    }
    container = {
        "name": WORDPRESS_APP,
        "image": settings.wordpress_image,
        "imagePullPolicy": settings.image_pull_policy,
        "ports": [{"containerPort": 80}],
        "env": _database_env() + signing_keys + _store_env(rc),
        "volumeMounts": [{"name": WORDPRESS_PVC, "mountPath": "/var/www/html"}],
        "readinessProbe": {**probe, "initialDelaySeconds": 15, "periodSeconds": 10, "timeoutSeconds": 5},
        "livenessProbe": {**probe, "initialDelaySeconds": 60, "periodSeconds": 15, "timeoutSeconds": 5},
        "resources": {
            "requests": {"cpu": "100m", "memory": "256Mi"},
            "limits": {"cpu": "1000m", "memory": "512Mi"},
        },
    }
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": WORDPRESS_APP, "namespace": rc.namespace, "labels": _labels(WORDPRESS_APP)},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": {"app": WORDPRESS_APP}},
            "strategy": {"type": "Recreate"},
            "template": {
                "metadata": {"labels": {"app": WORDPRESS_APP}},
                "spec": {
                    "initContainers": [wait_for_mysql],
                    "containers": [container],
                    "volumes": [{"name": WORDPRESS_PVC, "persistentVolumeClaim": {"claimName": WORDPRESS_PVC}}],
                },
            },
        },
    }


def build_wordpress_service(namespace: str) -> dict:
    return _cluster_ip_service(namespace, WORDPRESS_APP, 80)


# Each step after the reachability wait is allowed to fail on its own; the job only has to exit 0.
SETUP_SCRIPT = """\
set -e
WP="php wp-cli.phar --allow-root --path=/var/www/html"

echo "Waiting for WordPress to be reachable..."
until curl -sf http://wordpress/wp-login.php > /dev/null 2>&1; do
  echo "WordPress not ready yet, waiting..."
  sleep 5
done

curl -sO https://raw.githubusercontent.com/wp-cli/builds/gh-pages/phar/wp-cli.phar
chmod +x wp-cli.phar

$WP core install --url="$STORE_URL" --title="$STORE_NAME" --admin_user=admin \\
  --admin_password="$STORE_ADMIN_PASSWORD" --admin_email="$STORE_ADMIN_EMAIL" --skip-email || true
$WP plugin install woocommerce --activate || true
$WP rewrite structure '/%postname%/' || true
$WP wc product create --name="Sample Product" --regular_price="19.99" \\
  --description="A sample product for testing." --short_description="Sample product" \\
  --status=publish --user=admin || true
$WP option update woocommerce_cod_settings \\
  '{"enabled":"yes","title":"Cash on Delivery","description":"Pay with cash upon delivery.","instructions":"Pay with cash upon delivery."}' \\
  --format=json || true
$WP wc tool run install_pages --user=admin || true

echo "WooCommerce setup complete!"
"""


def build_setup_job(rc: StoreResourceConfig, settings: Settings) -> dict:
    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": {"name": SETUP_JOB_NAME, "namespace": rc.namespace, "labels": _labels()},
        "spec": {
            "backoffLimit": settings.setup_job_max_failures,
            "ttlSecondsAfterFinished": 300,
            "template": {
                "spec": {
                    "restartPolicy": "OnFailure",
                    "containers": [
                        {
                            "name": "wc-setup",
                            "image": settings.wordpress_image,
                            "imagePullPolicy": settings.image_pull_policy,
                            "command": ["/bin/bash", "-c", SETUP_SCRIPT],
                            "env": _database_env() + _store_env(rc),
                            "volumeMounts": [{"name": WORDPRESS_PVC, "mountPath": "/var/www/html"}],
                            "resources": {
                                "requests": {"cpu": "100m", "memory": "256Mi"},
                                "limits": {"cpu": "500m", "memory": "512Mi"},
                            },
                        }
                    ],
                    "volumes": [{"name": WORDPRESS_PVC, "persistentVolumeClaim": {"claimName": WORDPRESS_PVC}}],
                }
            },
        },
    }


def build_store_ingress(namespace: str, host: str, settings: Settings) -> dict:
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {
            "name": INGRESS_NAME,
            "namespace": namespace,
            "labels": _labels(),
            "annotations": {"nginx.ingress.kubernetes.io/proxy-body-size": "50m"},
        },
        "spec": {
            "ingressClassName": settings.ingress_class,
            "rules": [
                {
                    "host": host,
                    "http": {
                        "paths": [
                            {
                                "path": "/",
                                "pathType": "Prefix",
                                "backend": {"service": {"name": WORDPRESS_APP, "port": {"number": 80}}},
                            }
                        ]
                    },
                }
            ],
        },
    }


def build_network_policy(namespace: str, settings: Settings) -> dict:
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "NetworkPolicy",
        "metadata": {"name": NETWORK_POLICY_NAME, "namespace": namespace, "labels": _labels()},
        "spec": {
            "podSelector": {},
            "policyTypes": ["Ingress"],
            "ingress": [
                {
                    "from": [
                        {
                            "namespaceSelector": {
                                "matchLabels": {"kubernetes.io/metadata.name": settings.ingress_controller_namespace}
                            }
                        }
                    ]
                },
                {"from": [{"podSelector": {}}]},
            ],
        },
    }


def build_restart_patch(restarted_at: str) -> dict:
    return {"spec": {"template": {"metadata": {"annotations": {RESTARTED_AT_ANNOTATION: restarted_at}}}}}
