from twisted.internet import defer
from twisted.internet.error import ConnectionRefusedError
from twisted.internet.task import Clock
from twisted.trial.unittest import SynchronousTestCase
from eas_client.activesync_producers import build_folder_sync
from eas_client.commands import EASCommand
from eas_client.credentials import BasicCredential
from eas_client.device import DeviceIdentity
from eas_client.errors import ProtocolError, TransportError, ValidationError
from eas_client.transport import EASTransport, convert_elem_to_dict, version
from tests.fakes import FakeAgent, FakeResponse, xml_response

FOLDER_SYNC = ("<FolderSync xmlns=\"FolderHierarchy:\"><Status>1</Status><SyncKey>1</SyncKey>"
	"<Changes><Count>1</Count><Add><ServerId>1</ServerId><DisplayName>Inbox</DisplayName></Add></Changes></FolderSync>")


class TransportTests(SynchronousTestCase):
	def setUp(self):
		self.clock = Clock()
		self.credential = BasicCredential("user@contoso.com", "pw")
		self.device = DeviceIdentity("DEVICE01", "iPhone")

	def transport(self, *responses, **kwargs):
		self.agent = FakeAgent(*responses)
		return EASTransport("mail.contoso.com", agent=self.agent, reactor=self.clock, **kwargs)

	def invoke(self, transport, command=EASCommand.FolderSync, **kwargs):
		return transport.invoke(command, build_folder_sync(), self.credential, self.device, **kwargs)

	def test_request_line_and_headers(self):
		response = self.successResultOf(self.invoke(self.transport(xml_response(FOLDER_SYNC))))
		self.assertEqual(response.code, 200)
		request, = self.agent.requests
		self.assertEqual(request.method, b"POST")
		self.assertTrue(request.uri.startswith("https://mail.contoso.com/Microsoft-Server-ActiveSync?"))
		self.assertEqual(request.query, {"Cmd": "FolderSync", "User": "user@contoso.com",
			"DeviceId": "DEVICE01", "DeviceType": "iPhone"})
		self.assertEqual(request.header("Authorization"), self.credential.authorization_header())
		self.assertEqual(request.header("MS-ASProtocolVersion"), "14.1")
		self.assertEqual(request.header("Content-Type"), "text/xml")
		self.assertEqual(request.header("User-Agent"), "python-EAS-Client %s" % version)
		self.assertIsNone(request.header("X-MS-PolicyKey"))

	def test_policy_key_and_extra_headers(self):
		d = self.invoke(self.transport(xml_response(FOLDER_SYNC)), policy_key="0042",
			extra_headers={"X-Custom": "yes"})
		self.successResultOf(d)
		request, = self.agent.requests
		self.assertEqual(request.header("X-MS-PolicyKey"), "0042")
		self.assertEqual(request.header("X-Custom"), "yes")

	def test_device_user_agent(self):
		self.device = DeviceIdentity("DEVICE01", "iPhone", "Apple-iPhone/1")
		self.successResultOf(self.invoke(self.transport(xml_response(FOLDER_SYNC))))
		self.assertEqual(self.agent.requests[0].header("User-Agent"), "Apple-iPhone/1")

	def test_plain_http_and_full_url(self):
		transport = self.transport(xml_response(FOLDER_SYNC), use_ssl=False)
		self.successResultOf(self.invoke(transport))
		self.assertTrue(self.agent.requests[0].uri.startswith("http://mail.contoso.com/"))
		agent = FakeAgent(xml_response(FOLDER_SYNC))
		transport = EASTransport("https://eas.contoso.com/Microsoft-Server-ActiveSync", agent=agent, reactor=self.clock)
		self.successResultOf(self.invoke(transport))
		self.assertTrue(agent.requests[0].uri.startswith("https://eas.contoso.com/Microsoft-Server-ActiveSync?Cmd="))

	def test_parsed_document(self):
		response = self.successResultOf(self.invoke(self.transport(xml_response(FOLDER_SYNC))))
		self.assertEqual(response.as_dict()["FolderSync"]["SyncKey"], "1")

	def test_non_2xx(self):
		failure = self.failureResultOf(self.invoke(self.transport(FakeResponse(401))), TransportError)
		self.assertEqual(failure.value.code, 401)
		self.assertFalse(failure.value.timeout)

	def test_network_failure(self):
		failure = self.failureResultOf(self.invoke(self.transport(ConnectionRefusedError())), TransportError)
		self.assertIsNone(failure.value.code)

	def test_malformed_body(self):
		self.failureResultOf(self.invoke(self.transport(FakeResponse(200, "<FolderSync><Status>"))), ProtocolError)

	def test_unexpected_root(self):
		self.failureResultOf(self.invoke(self.transport(xml_response("<Settings/>"))), ProtocolError)

	def test_empty_body(self):
		self.failureResultOf(self.invoke(self.transport(FakeResponse(200))), ProtocolError)
		response = self.successResultOf(self.invoke(self.transport(FakeResponse(200)), EASCommand.SendMail))
		self.assertIsNone(response.document)

	def test_timeout(self):
		d = self.invoke(self.transport(defer.Deferred()))
		self.clock.advance(59)
		self.assertNoResult(d)
		self.clock.advance(1)
		failure = self.failureResultOf(d, TransportError)
		self.assertTrue(failure.value.timeout)

	def test_per_call_timeout(self):
		d = self.invoke(self.transport(defer.Deferred()), timeout=2)
		self.clock.advance(2)
		self.assertTrue(self.failureResultOf(d, TransportError).value.timeout)

	def test_zero_timeout_is_not_the_default(self):
		d = self.invoke(self.transport(defer.Deferred()), timeout=0)
		self.clock.advance(0)
		self.assertTrue(self.failureResultOf(d, TransportError).value.timeout)
		d = self.transport(defer.Deferred()).options(self.credential, timeout=0)
		self.clock.advance(0)
		self.assertTrue(self.failureResultOf(d, TransportError).value.timeout)

	def test_cancel(self):
		d = self.invoke(self.transport(defer.Deferred()))
		d.cancel()
		self.failureResultOf(d, defer.CancelledError)

	def test_unresolvable_user(self):
		from eas_client.credentials import BearerToken
		self.credential = BearerToken("opaque")
		self.failureResultOf(self.invoke(self.transport()), ValidationError)
		self.assertEqual(self.agent.requests, [])

	def test_options(self):
		transport = self.transport(FakeResponse(200, headers={"Allow": ["OPTIONS,POST"]}))
		response = self.successResultOf(transport.options(self.credential))
		request, = self.agent.requests
		self.assertEqual(request.method, b"OPTIONS")
		self.assertEqual(request.uri, "https://mail.contoso.com/Microsoft-Server-ActiveSync")
		self.assertIsNone(request.body)
		self.assertEqual(response.header_map(), {"Allow": ["OPTIONS,POST"]})

	def test_options_timeout(self):
		d = self.transport(defer.Deferred()).options(self.credential)
		self.clock.advance(5)
		self.assertTrue(self.failureResultOf(d, TransportError).value.timeout)


class ConvertTests(SynchronousTestCase):
	def test_repeated_children_become_a_list(self):
		from lxml import etree
		root = etree.fromstring("<Changes><Count>2</Count><Add><ServerId>1</ServerId></Add>"
			"<Add><ServerId>2</ServerId></Add></Changes>")
		self.assertEqual(convert_elem_to_dict(root), {"Changes": [
			{"Count": "2"}, {"Add": {"ServerId": "1"}}, {"Add": {"ServerId": "2"}}]})
