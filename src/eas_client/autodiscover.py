"""Autodiscover v1 (POX) lookup of the ActiveSync endpoint of a mailbox."""
from lxml import etree
from twisted.internet import defer
from twisted.python import log
from twisted.web.client import Agent
from twisted.web.http_headers import Headers
from eas_client.activesync_producers import XMLProducer
from eas_client.errors import EASError, ProtocolError, TransportError, ValidationError
from eas_client.transport import child_elements, find_path, find_text, local_name, parse_document, read_body

REQUEST_SCHEMA = "http://schemas.microsoft.com/exchange/autodiscover/mobilesync/requestschema/2006"
RESPONSE_SCHEMA = "http://schemas.microsoft.com/exchange/autodiscover/mobilesync/responseschema/2006"
MAX_REDIRECTS = 10


class RedirectLimit(ProtocolError):
	pass


def candidate_urls(email):
	domain = email.rsplit("@", 1)[1]
	return [
		"https://%s/Autodiscover/Autodiscover.xml" % domain,
		"https://autodiscover.%s/Autodiscover/Autodiscover.xml" % domain,
	]

def build_request(email):
	root = etree.Element("{%s}Autodiscover" % REQUEST_SCHEMA, nsmap={None: REQUEST_SCHEMA})
	request = etree.SubElement(root, "{%s}Request" % REQUEST_SCHEMA)
	etree.SubElement(request, "{%s}EMailAddress" % REQUEST_SCHEMA).text = email
	etree.SubElement(request, "{%s}AcceptableResponseSchema" % REQUEST_SCHEMA).text = RESPONSE_SCHEMA
	return root

def parse_response(body):
	"""Returns ("url", url) or ("redirect", email)."""
	document = parse_document(body)
	if local_name(document) != "Autodiscover":
		raise ProtocolError("unexpected Autodiscover root element %s" % local_name(document))
	response = find_path(document, "Response")
	error_message = find_text(response, "Error", "Message")
	if error_message:
		raise ProtocolError("Autodiscover error: %s" % error_message)
	action = find_path(response, "Action")
	redirect = find_text(action, "Redirect")
	if redirect:
		return ("redirect", redirect)
	action_error = find_text(action, "Error", "Message")
	if action_error:
		raise ProtocolError("Autodiscover error: %s" % action_error)
	settings = find_path(action, "Settings")
	for server in child_elements(settings) if settings is not None else []:
		if local_name(server) == "Server" and find_text(server, "Type") == "MobileSync":
			url = find_text(server, "Url")
			if url:
				return ("url", url)
	raise ProtocolError("Autodiscover response has no MobileSync server url")


class AutoDiscover:
	def __init__(self, email, credential, agent=None, reactor=None, timeout=30, verbose=False):
		if not email or "@" not in email:
			raise ValidationError("an email address is required, got %r" % email)
		if reactor is None:
			from twisted.internet import reactor
		self.email = email
		self.credential = credential
		self.reactor = reactor
		self.agent = agent if agent is not None else Agent(reactor)
		self.timeout = timeout
		self.verbose = verbose
		self.redirects = 0

	def autodiscover(self):
		"""Fires with the ActiveSync endpoint url of the mailbox."""
		return self.try_candidates(candidate_urls(self.email), None)

	def try_candidates(self, urls, last_failure):
		if not urls:
			if last_failure is not None:
				return last_failure
			return defer.fail(TransportError("Autodiscover failed for %s: no candidates" % self.email))
		d = self.post(urls[0])
		d.addCallbacks(self.process_result, self.candidate_failed, errbackArgs=(urls[1:],))
		return d

	def candidate_failed(self, failure, remaining):
		if failure.check(defer.CancelledError):
			return failure
		if self.verbose: log.msg("Autodiscover candidate failed: %s" % failure.getErrorMessage())
		return self.try_candidates(remaining, failure)

	def post(self, url):
		if self.verbose: log.msg("Autodiscover POST %s" % url)
		d = self.agent.request(b"POST", url.encode("ascii"), Headers({
			'Authorization': [self.credential.authorization_header()],
			'Content-Type': ["text/xml"],
		}), XMLProducer(build_request(self.email)))
		d.addCallback(self.read_response, url)
		d.addTimeout(self.timeout, self.reactor)
		d.addErrback(self.post_failed, url)
		return d

	def read_response(self, response, url):
		d = read_body(response, self.verbose)
		d.addCallback(self.check_response, response, url)
		return d

	def check_response(self, body, response, url):
		if response.code != 200:
			raise TransportError("%s returned HTTP %d" % (url, response.code), code=response.code)
		return parse_response(body)

	def post_failed(self, failure, url):
		if failure.check(EASError, defer.CancelledError):
			return failure
		if failure.check(defer.TimeoutError):
			raise TransportError("%s timed out after %ss" % (url, self.timeout), timeout=True)
		raise TransportError("%s failed: %s" % (url, failure.getErrorMessage())) from failure.value

	def process_result(self, result):
		kind, value = result
		if kind == "url":
			log.msg("Autodiscover %s: %s" % (self.email, value))
			return value
		self.redirects += 1
		if "@" not in value:
			raise ProtocolError("Autodiscover redirect to invalid address %r" % value)
		if self.redirects > MAX_REDIRECTS:
			raise RedirectLimit("more than %d Autodiscover redirects for %s" % (MAX_REDIRECTS, self.email))
		log.msg("Autodiscover redirect %s -> %s" % (self.email, value))
		self.email = value
		return self.autodiscover()
