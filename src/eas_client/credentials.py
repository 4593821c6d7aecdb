import base64, json
from zope.interface import Interface, implementer
from eas_client.errors import ValidationError

# Claims that carry the mailbox address in Azure AD / Exchange Online tokens
PRINCIPAL_CLAIMS = ("upn", "preferred_username", "unique_name", "email")

class ICredential(Interface):
	def authorization_header():
		"""Value for the HTTP Authorization header."""
	def principal():
		"""Mailbox address of the authenticated user."""


@implementer(ICredential)
class BasicCredential:
	def __init__(self, username, secret, domain=None):
		if not username:
			raise ValidationError("username is required")
		if not secret:
			raise ValidationError("secret is required")
		self.username = username
		self.secret = secret
		self.domain = domain

	def __repr__(self):
		return "<BasicCredential %s>" % self.username

	def authorization_header(self):
		if self.domain:
			userpass = "%s\\%s:%s" % (self.domain.lower(), self.username.lower(), self.secret)
		else:
			userpass = "%s:%s" % (self.username, self.secret)
		return "Basic " + base64.b64encode(userpass.encode("utf-8")).decode("ascii")

	def principal(self):
		return self.username


@implementer(ICredential)
class BearerToken:
	def __init__(self, token, user=None):
		if not token:
			raise ValidationError("token is required")
		self.token = token
		self.user = user

	def __repr__(self):
		return "<BearerToken %s>" % (self.user or "?")

	def authorization_header(self):
		return "Bearer " + self.token

	def claims(self):
		"""Decode the JWT payload without verifying it.

		The server validates the token; the client only needs to know
		whose mailbox it is talking to.
		"""
		parts = self.token.split(".")
		if len(parts) != 3:
			return {}
		payload = parts[1] + "=" * (-len(parts[1]) % 4)
		try:
			claims = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
		except (ValueError, UnicodeError):
			return {}
		if not isinstance(claims, dict):
			return {}
		return claims

	def principal(self):
		if self.user:
			return self.user
		claims = self.claims()
		for name in PRINCIPAL_CLAIMS:
			if claims.get(name):
				return claims[name]
		raise ValidationError("cannot resolve the mailbox address from the bearer token")
