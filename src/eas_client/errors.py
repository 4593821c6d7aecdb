class EASError(Exception):
	pass

class ValidationError(EASError, ValueError):
	"""Bad or missing caller input. Raised before anything goes on the wire."""

class TransportError(EASError):
	"""The request did not produce a usable HTTP response."""
	def __init__(self, message, code=None, timeout=False):
		EASError.__init__(self, message)
		self.code = code
		self.timeout = timeout

class ProtocolError(EASError):
	"""A 2xx response whose body is not what the command expects."""
	def __init__(self, message, status=None):
		EASError.__init__(self, message)
		self.status = status

class ProvisioningRequired(ProtocolError):
	pass

class ProvisioningError(EASError):
	OFFER = "offer"
	ACKNOWLEDGE = "acknowledge"

	def __init__(self, round, message, cause=None):
		EASError.__init__(self, "%s round failed: %s" % (round, message))
		self.round = round
		self.cause = cause
