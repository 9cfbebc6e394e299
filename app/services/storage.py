#app\services\storage.py
import base64, logging, uuid
import requests
from app.core.config import settings
from app.core.errors import ProviderError, ValidationError

logger = logging.getLogger(__name__)

SUPABASE_URL = settings.supabase_url
SUPABASE_SERVICE_ROLE = settings.supabase_service_role
BUCKET = settings.supabase_bucket

ALLOWED_IMAGE_TYPES = {"jpeg", "jpg", "png", "gif", "webp"}

def validate_image(data: bytes, content_type: str | None, filename: str | None) -> None:
    if not data:
        raise ValidationError("Image is empty")
    limit = settings.max_image_bytes
    if len(data) > limit:
        raise ValidationError(f"Image exceeds {limit // (1024 * 1024)}MB")
    ext = filename.rsplit(".", 1)[-1].lower() if filename and "." in filename else ""
    mime = (content_type or "").lower()
    subtype = mime.split("/", 1)[1] if mime.startswith("image/") else ""
    if ext not in ALLOWED_IMAGE_TYPES or subtype not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Only jpeg, jpg, png, gif or webp images are allowed")

def read_upload(stream) -> bytes:
    # one byte past the limit is enough for validate_image to reject it
    return stream.read(settings.max_image_bytes + 1)

def upload_image(data: bytes, content_type: str, path: str) -> str:
    """Uploads to Supabase Storage via REST; returns public URL (bucket must be public)."""
    if not (SUPABASE_URL and SUPABASE_SERVICE_ROLE):
        # no object storage configured: inline the image
        logger.warning(
            "SUPABASE_URL/SUPABASE_SERVICE_ROLE not set; storing %s inline as a data: URL "
            "(development only)", path,
        )
        b64 = base64.b64encode(data).decode("utf-8")
        return f"data:{content_type};base64,{b64}"
    url = f"{SUPABASE_URL}/storage/v1/object/{BUCKET}/{path}"
    try:
        r = requests.post(url, headers={
            "Authorization": f"Bearer {SUPABASE_SERVICE_ROLE}",
            "Content-Type": content_type,
            "x-upsert": "true",
        }, data=data, timeout=30)
        r.raise_for_status()
    except requests.RequestException as e:
        logger.error("Image upload to %s failed: %s", path, e, exc_info=True)
        raise ProviderError("Image upload failed")
    # public URL pattern:
    return f"{SUPABASE_URL}/storage/v1/object/public/{BUCKET}/{path}"

def make_object_key(prefix: str, filename: str) -> str:
    ext = (filename.rsplit(".", 1)[-1] or "jpg").lower()
    return f"{prefix}/{uuid.uuid4().hex}.{ext}"

def store_image(data: bytes, content_type: str | None, filename: str | None, prefix: str) -> str:
    validate_image(data, content_type, filename)
    key = make_object_key(prefix, filename or "upload.jpg")
    return upload_image(data, content_type or "image/jpeg", key)
