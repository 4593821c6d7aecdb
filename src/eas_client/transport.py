from urllib.parse import urlencode, urlparse, urlunparse
from lxml import etree
from twisted.internet import defer, error, protocol
from twisted.python import log
from twisted.web.client import Agent, PotentialDataLoss, ResponseDone
from twisted.web.http_headers import Headers
from twisted.web.iweb import IBodyProducer
from eas_client.activesync_producers import XMLProducer
from eas_client.commands import EASCommand
from eas_client.errors import EASError, ProtocolError, TransportError

version = "2.0"

DEFAULT_PROTOCOL_VERSION = "14.1"
COMMAND_TIMEOUT = 60
PROBE_TIMEOUT = 5


# Response processing

def local_name(elem):
	return etree.QName(elem).localname

def child_elements(elem):
	return [child for child in elem if isinstance(child.tag, str)]

def find_path(elem, *names):
	for name in names:
		if elem is None:
			return None
		elem = next((child for child in child_elements(elem) if local_name(child) == name), None)
	return elem

def find_text(elem, *names):
	found = find_path(elem, *names)
	if found is None:
		return None
	return (found.text or "").strip()

def convert_elem_to_dict(elem):
	out_dict = {}
	k = local_name(elem)
	children = child_elements(elem)
	if not children:
		v = (elem.text or "").strip()
	elif len(children) == 1:
		v = convert_elem_to_dict(children[0])
	else:
		child_names = [local_name(child) for child in children]
		if len(set(child_names)) == len(child_names):
			v = {}
			for child in children:
				v.update(convert_elem_to_dict(child))
		else:
			v = [convert_elem_to_dict(child) for child in children]
	out_dict[k] = v
	return out_dict

def parse_document(body):
	parser = etree.XMLParser(resolve_entities=False, no_network=True)
	try:
		document = etree.fromstring(body, parser)
	except etree.XMLSyntaxError as e:
		raise ProtocolError("response is not well-formed XML: %s" % e)
	if document is None:
		raise ProtocolError("response has no root element")
	return document


class BodyReceiver(protocol.Protocol):
	def __init__(self, deferred, verbose=False):
		self.deferred = deferred
		self.d = []
		self.verbose = verbose
	def dataReceived(self, data):
		self.d.append(data)
	def connectionLost(self, reason):
		if self.deferred.called: # cancelled
			return
		body = b"".join(self.d)
		if self.verbose: log.msg("FINISHED LOADING %d bytes" % len(body))
		if reason.check(ResponseDone, PotentialDataLoss):
			self.deferred.callback(body)
		else:
			self.deferred.errback(reason)

def read_body(response, verbose=False):
	def cancel(d):
		abort = getattr(receiver.transport, "abortConnection", None)
		if abort is not None:
			abort()
	d = defer.Deferred(cancel)
	receiver = BodyReceiver(d, verbose)
	response.deliverBody(receiver)
	return d


class EASResponse:
	def __init__(self, code, headers, body=b"", document=None):
		self.code = code
		self.headers = headers
		self.body = body
		self.document = document

	def __repr__(self):
		root = None if self.document is None else local_name(self.document)
		return "<EASResponse %d %s>" % (self.code, root)

	def as_dict(self):
		if self.document is None:
			return {}
		return convert_elem_to_dict(self.document)

	def header_map(self):
		"""Header name -> list of values. Names come back in Twisted's
		canonical capitalization (MS-ASProtocolVersions as
		Ms-Asprotocolversions), so look them up case-insensitively."""
		return dict((name.decode("latin-1"), [v.decode("latin-1") for v in values])
			for name, values in self.headers.getAllRawHeaders())


class EASTransport:
	"""Issues single authenticated requests against one ActiveSync endpoint.

	Holds no per-device or per-user state: credentials, device and policy
	key are passed to every call.
	"""

	def __init__(self, server, use_ssl=True, server_version=DEFAULT_PROTOCOL_VERSION,
			timeout=COMMAND_TIMEOUT, probe_timeout=PROBE_TIMEOUT, agent=None, reactor=None, verbose=False):
		if reactor is None:
			from twisted.internet import reactor
		self.server = server
		self.use_ssl = use_ssl
		self.server_version = server_version
		self.timeout = timeout
		self.probe_timeout = probe_timeout
		self.reactor = reactor
		self.agent = agent if agent is not None else Agent(reactor)
		self.verbose = verbose

	# Request helpers

	def get_url(self):
		if "://" in self.server:
			return self.server
		scheme = "http"
		if self.use_ssl:
			scheme = "https"
		return "%s://%s/Microsoft-Server-ActiveSync"%(scheme, self.server)
	def add_parameters(self, url, params):
		ps = list(urlparse(url))
		ps[4] = urlencode(params)
		return urlunparse(ps)
	def user_agent(self, device=None):
		if device is not None and device.user_agent:
			return device.user_agent
		return "python-EAS-Client %s" % version

	def command_url(self, command, credential, device):
		return self.add_parameters(self.get_url(), [
			("Cmd", command.cmd),
			("User", credential.principal()),
			("DeviceId", device.device_id),
			("DeviceType", device.device_type),
		])

	def command_headers(self, credential, device, policy_key=None, extra_headers=None):
		headers = {
			'User-Agent': [self.user_agent(device)],
			'Authorization': [credential.authorization_header()],
			'MS-ASProtocolVersion': [self.server_version],
			'Content-Type': ["text/xml"],
		}
		if policy_key is not None:
			headers['X-MS-PolicyKey'] = [str(policy_key)]
		for name, value in (extra_headers or {}).items():
			headers[name] = [value]
		return headers

	# Supported requests

	def invoke(self, command, body, credential, device, policy_key=None, extra_headers=None, timeout=None):
		"""POST one command. Fires with an EASResponse."""
		return defer.maybeDeferred(self._invoke, command, body, credential, device, policy_key, extra_headers, timeout)

	def _invoke(self, command, body, credential, device, policy_key, extra_headers, timeout):
		url = self.command_url(command, credential, device)
		headers = self.command_headers(credential, device, policy_key, extra_headers)
		if body is not None and not IBodyProducer.providedBy(body):
			body = XMLProducer(body)
		if self.verbose:
			log.msg("POST %s policy key %s" % (url, "set" if policy_key is not None else "unset"))
		return self.request(b"POST", url, headers, body, command, self.timeout if timeout is None else timeout)

	def options(self, credential, timeout=None):
		"""OPTIONS on the bare endpoint. Fires with an EASResponse without a document."""
		return defer.maybeDeferred(self.request, b"OPTIONS", self.get_url(), {
			'User-Agent': [self.user_agent()],
			'Authorization': [credential.authorization_header()],
		}, None, EASCommand.Options, self.probe_timeout if timeout is None else timeout)

	def request(self, method, url, headers, producer, command, timeout):
		d = self.agent.request(method, url.encode("ascii"), Headers(headers), producer)
		d.addCallback(self.command_response, command)
		d.addTimeout(timeout, self.reactor)
		d.addErrback(self.transport_error, command, timeout)
		return d

	def command_response(self, response, command):
		d = read_body(response, self.verbose)
		d.addCallback(self.process_body, response, command)
		return d

	def process_body(self, body, response, command):
		if not 200 <= response.code < 300:
			e = TransportError("%s returned HTTP %d" % (command.cmd, response.code), code=response.code)
			e.body = body
			raise e
		if not body.strip():
			if command.empty_ok:
				return EASResponse(response.code, response.headers, body)
			raise ProtocolError("%s returned an empty body" % command.cmd)
		if command.response_root is None:
			return EASResponse(response.code, response.headers, body)
		document = parse_document(body)
		if local_name(document) != command.response_root:
			raise ProtocolError("%s response has root element %s" % (command.cmd, local_name(document)))
		if self.verbose: log.msg("Result: %r" % convert_elem_to_dict(document))
		return EASResponse(response.code, response.headers, body, document)

	def transport_error(self, failure, command, timeout):
		if failure.check(EASError, defer.CancelledError):
			return failure
		if failure.check(defer.TimeoutError, error.TimeoutError):
			log.msg("%s timed out after %ss" % (command.cmd, timeout))
			raise TransportError("%s timed out after %ss" % (command.cmd, timeout), timeout=True)
		log.msg("%s failed: %s" % (command.cmd, failure.getErrorMessage()))
		raise TransportError("%s failed: %s" % (command.cmd, failure.getErrorMessage())) from failure.value
