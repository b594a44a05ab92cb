import hashlib
from rest_framework.authentication import BaseAuthentication
from rest_framework.permissions import BasePermission
from rest_framework.exceptions import AuthenticationFailed
from django.utils import timezone
from apps.core.models import MessMember, StaffToken
from apps.core.services.members import has_role

class StaffTokenAuthentication(BaseAuthentication):
	"""Bearer token authentication for staff scanner devices"""

	def authenticate(self, request):
		auth_header = request.META.get('HTTP_AUTHORIZATION')
		if not auth_header or not auth_header.startswith('Bearer '):
			return None

		token = auth_header.split(' ', 1)[1].strip()
		token_hash = hashlib.sha256(token.encode()).hexdigest()

		try:
			staff_token = StaffToken.objects.select_related('user').get(
				token_hash=token_hash,
				active=True
			)
		except StaffToken.DoesNotExist:
			raise AuthenticationFailed('Invalid token')

		# Check expiry
		if staff_token.expires_at and timezone.now() > staff_token.expires_at:
			raise AuthenticationFailed('Token expired')

		if not staff_token.user.is_active:
			raise AuthenticationFailed('User inactive or deleted')

		return (staff_token.user, staff_token)

	def authenticate_header(self, request):
		return 'Bearer'

class IsMessStaff(BasePermission):
	"""Mess staff (and admins) operate the QR scanner"""

	def has_permission(self, request, view):
		return has_role(request.user, 'mess_staff', 'admin')

class IsStaffMember(BasePermission):
	"""Any staff role: mess staff, HOD or admin"""

	def has_permission(self, request, view):
		return has_role(request.user, *MessMember.STAFF_ROLES)

class IsAdminOrHod(BasePermission):
	"""Schedule edits and fine waivers"""

	def has_permission(self, request, view):
		return has_role(request.user, 'admin', 'hod')
