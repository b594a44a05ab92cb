# Decorators
import functools
import logging

from django.db import DatabaseError

from apps.core.exceptions import StorageError

logger = logging.getLogger(__name__)


def storage_errors(func):
	"""Surface database failures as StorageError with the cause attached"""
	@functools.wraps(func)
	def wrapper(*args, **kwargs):
		try:
			return func(*args, **kwargs)
		except DatabaseError as exc:
			logger.error(f"Storage failure in {func.__name__}: {exc}")
			raise StorageError() from exc
	return wrapper
