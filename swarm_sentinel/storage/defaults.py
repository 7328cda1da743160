"""
Swarm Sentinel - Default shared files

Seule la configuration du load balancer a un contenu par défaut.
Les jetons de join n'en ont pas.
"""

from typing import Optional

from .interfaces import SharedFile

DEFAULT_LB_CONFIG = """user  nginx;
worker_processes  1;
error_log  /var/log/nginx/error.log warn;
pid        /var/run/nginx.pid;
events {
    worker_connections  1024;
}
http {
    include       /etc/nginx/mime.types;
    default_type  application/octet-stream;

    log_format  main  '$remote_addr - $remote_user [$time_local] "$request" '
                      '$status $body_bytes_sent "$http_referer" '
                      '"$http_user_agent" "$http_x_forwarded_for"';

    access_log  /var/log/nginx/access.log  main;
    sendfile        on;
    keepalive_timeout  65;

    upstream frontend {
        server shuffle-frontend:80;
    }

    upstream backend {
        server shuffle_backend:5001;
    }

    server {
        listen       80;
        server_name  localhost;

        location / {
            proxy_pass http://frontend;
            proxy_set_header Host $host;
            proxy_set_header X-Real-IP $remote_addr;
            proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
            proxy_set_header X-Forwarded-Proto $scheme;
        }

        location /api/ {
            proxy_pass http://backend;
            proxy_set_header Host $host;
            proxy_set_header X-Real-IP $remote_addr;
            proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
            proxy_set_header X-Forwarded-Proto $scheme;
        }
    }
}
"""


def default_for(file: SharedFile) -> Optional[str]:
    """Contenu régénérable pour file, ou None."""
    if file is SharedFile.LB_CONFIG:
        return DEFAULT_LB_CONFIG
    return None
