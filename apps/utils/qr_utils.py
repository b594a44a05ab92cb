import hmac
import hashlib
import json
import logging
import qrcode
from io import BytesIO
import base64
import binascii
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from apps.core.clock import default_clock
from apps.core.exceptions import InvalidSignature, Expired
from apps.core.models import Settings

logger = logging.getLogger(__name__)

PROFILE_KIND = 'meal_attendance'
BOOKING_KIND = 'guest_booking'
PAYMENT_KIND = 'payment_confirmation'


def _qr_secret():
	"""QR signing key, kept apart from the session signing key"""
	secret = settings.QR_SECRET
	if not secret:
		raise ImproperlyConfigured('QR_SECRET is not configured')
	if secret == settings.SECRET_KEY:
		raise ImproperlyConfigured('QR_SECRET must differ from DJANGO_SECRET_KEY')
	return secret.encode()


def _sign(payload_bytes):
	return hmac.new(_qr_secret(), payload_bytes, hashlib.sha256).hexdigest()


def generate_qr_payload(subject_id, kind, expires_at=None, extra=None, clock=None):
	"""Generate HMAC-signed QR payload for a user or booking"""
	clock = clock or default_clock
	version = Settings.get_settings().qr_secret_version
	rotation = settings.MESS_CONFIG['profile_qr_rotation_seconds']

	issued_at = int(clock.now().timestamp())
	window = issued_at - issued_at % rotation

	payload = {'v': version, 'sub': subject_id, 'win': window, 'kind': kind}
	if expires_at is not None:
		payload['exp'] = int(expires_at.timestamp())
	if extra:
		payload.update(extra)

	payload_bytes = json.dumps(payload, sort_keys=True, separators=(',', ':')).encode()

	return {
		'data': base64.b64encode(payload_bytes).decode(),
		'hash': _sign(payload_bytes),
		'expires': payload.get('exp', window + rotation),
	}


def verify_qr_payload(data, signature, clock=None):
	"""Verify QR payload HMAC and expiry and return the decoded payload"""
	clock = clock or default_clock

	try:
		payload_bytes = base64.b64decode(data, validate=True)
	except (TypeError, ValueError, binascii.Error):
		logger.warning('QR rejected: undecodable payload')
		raise InvalidSignature()

	# Only the canonical encoding of the signed bytes is accepted
	if base64.b64encode(payload_bytes).decode() != data:
		logger.warning('QR rejected: non-canonical encoding')
		raise InvalidSignature()

	if not isinstance(signature, str) or not hmac.compare_digest(signature, _sign(payload_bytes)):
		logger.warning('QR rejected: signature mismatch')
		raise InvalidSignature()

	try:
		payload = json.loads(payload_bytes)
		version = int(payload['v'])
		window = int(payload['win'])
		int(payload['sub'])
		payload['kind']
	except (ValueError, TypeError, KeyError):
		logger.warning('QR rejected: malformed payload')
		raise InvalidSignature()

	# Check version
	if version != Settings.get_settings().qr_secret_version:
		logger.warning('QR rejected: secret version mismatch')
		raise InvalidSignature()

	expires = payload.get('exp')
	if expires is None:
		expires = window + settings.MESS_CONFIG['profile_qr_tolerance_seconds']

	if clock.now().timestamp() > expires:
		logger.warning(f"QR rejected: expired at {expires}")
		raise Expired()

	return payload


def generate_qr_image(payload):
	"""Generate QR code image from payload"""
	qr = qrcode.QRCode(
		version=1,
		error_correction=qrcode.constants.ERROR_CORRECT_L,
		box_size=10,
		border=4,
	)
	qr.add_data(json.dumps(payload, separators=(',', ':')))
	qr.make(fit=True)

	img = qr.make_image(fill_color="black", back_color="white")

	# Convert to base64 for easy transmission
	buffer = BytesIO()
	img.save(buffer, format='PNG')
	buffer.seek(0)

	img_base64 = base64.b64encode(buffer.getvalue()).decode()
	return img_base64


def rotate_qr_secret_version():
	"""Invalidate every outstanding QR code"""
	app_settings = Settings.get_settings()
	app_settings.qr_secret_version += 1
	app_settings.save()
	logger.info(f"QR secret version rotated to {app_settings.qr_secret_version}")
	return app_settings.qr_secret_version
