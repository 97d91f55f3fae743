import logging
import socket

from django.conf import settings
from django.core.management import call_command
from django.core.management.base import BaseCommand

logger = logging.getLogger("relay")

ENDPOINTS = (
    ("Chat Upload", "POST", "/upload"),
    ("Gallery Upload", "POST", "/upload-gallery"),
    ("Chat Media", "GET", "/media/<chatId>/<filename>"),
    ("Gallery Media", "GET", "/gallery/<userId>/<filename>"),
    ("Debug Chat", "GET", "/debug/files"),
    ("Debug Gallery", "GET", "/debug/gallery"),
    ("Health", "GET", "/health"),
)


def get_local_ip() -> str:
    """First non-loopback IPv4 address, or localhost."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packet is sent; connect only selects the outbound interface
        sock.connect(("10.255.255.255", 1))
        return sock.getsockname()[0]
    except OSError:
        return "localhost"
    finally:
        sock.close()


class Command(BaseCommand):
    help = "Run the media relay on all interfaces"

    def add_arguments(self, parser):
        parser.add_argument("--port", type=int, default=None, help="Port to listen on (default RELAY_PORT)")

    def handle(self, *args, **options):
        port = options["port"] or settings.RELAY_PORT

        for directory in (settings.RELAY_UPLOADS_DIR, settings.RELAY_GALLERY_DIR, settings.RELAY_TEMP_DIR):
            directory.mkdir(parents=True, exist_ok=True)

        local_ip = get_local_ip()
        logger.info(f"[RELAY] Media relay on port {port}")
        logger.info(f"[RELAY] Local:   http://localhost:{port}")
        logger.info(f"[RELAY] Network: http://{local_ip}:{port}")
        for name, method, route in ENDPOINTS:
            logger.info(f"[RELAY] {name:<15} {method:<5} {route}")
        logger.info(f"[RELAY] Chat dir:    {settings.RELAY_UPLOADS_DIR}")
        logger.info(f"[RELAY] Gallery dir: {settings.RELAY_GALLERY_DIR}")
        logger.info(f"[RELAY] Temp dir:    {settings.RELAY_TEMP_DIR}")

        call_command("runserver", f"0.0.0.0:{port}", use_reloader=False)
