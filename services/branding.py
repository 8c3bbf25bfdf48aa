import base64
import binascii
import re
from io import BytesIO
from typing import Any, Dict, Optional, Tuple

import exifread
from PIL import Image, ImageOps, UnidentifiedImageError

from services.errors import LogoFormatError, LogoTooLargeError


LOGO_MAX_BYTES = 1024 * 1024  # Limite de 1MB
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}

_DATA_URI = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,(?P<data>.+)$", re.DOTALL)


def _read_image_and_exif(file_bytes: bytes) -> Tuple[Image.Image, Dict[str, Any]]:
	exif_data: Dict[str, Any] = {}
	with BytesIO(file_bytes) as bio:
		# EXIF é opcional; logos PNG/GIF normalmente não têm
		try:
			tags = exifread.process_file(bio, details=False)
			exif_data = {str(k): str(v) for k, v in tags.items()}
		except Exception:
			exif_data = {}
	try:
		img = Image.open(BytesIO(file_bytes))
		img.load()
	except (UnidentifiedImageError, OSError) as exc:
		raise LogoFormatError("Não foi possível ler a imagem enviada.") from exc
	return img, exif_data


def _save_image_to_bytes(img: Image.Image, fmt: str = "PNG") -> bytes:
	with BytesIO() as out:
		if img.mode not in ("RGB", "RGBA", "LA", "L"):
			img = img.convert("RGBA")
		img.save(out, format=fmt)
		return out.getvalue()


def encode_logo(content: bytes, content_type: Optional[str], max_bytes: int = LOGO_MAX_BYTES) -> str:
	"""Valida o logo enviado e devolve um data URI PNG já com a orientação EXIF aplicada."""
	if content_type not in ALLOWED_CONTENT_TYPES:
		raise LogoFormatError("Formato não suportado. Envie JPEG, PNG, WEBP ou GIF.")
	if len(content) > max_bytes:
		raise LogoTooLargeError("Por favor, selecione um logo com menos de 1MB.")
	img, _exif = _read_image_and_exif(content)
	img = ImageOps.exif_transpose(img)
	encoded = base64.b64encode(_save_image_to_bytes(img)).decode("ascii")
	return f"data:image/png;base64,{encoded}"


def logo_metadata(content: bytes, content_type: Optional[str] = None) -> Dict[str, Any]:
	img, exif_data = _read_image_and_exif(content)
	width, height = img.size
	return {
		"width": width,
		"height": height,
		"content_type": content_type,
		"size": len(content),
		"exif": exif_data,
	}


def decode_data_uri(data_uri: str) -> Tuple[str, bytes]:
	m = _DATA_URI.match(data_uri or "")
	if not m:
		raise LogoFormatError("Logo salvo não é um data URI válido.")
	try:
		return m.group("mime"), base64.b64decode(m.group("data"), validate=False)
	except (binascii.Error, ValueError) as exc:
		raise LogoFormatError("Logo salvo está corrompido.") from exc


def logo_image(data_uri: str) -> Image.Image:
	_mime, raw = decode_data_uri(data_uri)
	img, _exif = _read_image_and_exif(raw)
	return img
