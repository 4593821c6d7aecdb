import base64, json
from twisted.trial.unittest import SynchronousTestCase
from eas_client.credentials import BasicCredential, BearerToken, ICredential
from eas_client.device import DeviceIdentity
from eas_client.errors import ValidationError


def make_jwt(claims):
	def segment(data):
		return base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).rstrip(b"=").decode("ascii")
	return "%s.%s.signature" % (segment({"alg": "RS256", "typ": "JWT"}), segment(claims))


class BasicCredentialTests(SynchronousTestCase):
	def test_header_without_domain(self):
		credential = BasicCredential("user@contoso.com", "s3cret")
		self.assertEqual(credential.authorization_header(),
			"Basic " + base64.b64encode(b"user@contoso.com:s3cret").decode("ascii"))
		self.assertEqual(credential.principal(), "user@contoso.com")

	def test_header_with_domain(self):
		credential = BasicCredential("JDoe", "Pw", domain="CONTOSO")
		self.assertEqual(credential.authorization_header(),
			"Basic " + base64.b64encode(b"contoso\\jdoe:Pw").decode("ascii"))

	def test_provides_interface(self):
		self.assertTrue(ICredential.providedBy(BasicCredential("u", "p")))
		self.assertTrue(ICredential.providedBy(BearerToken("t", "u@x")))

	def test_missing_parts(self):
		self.assertRaises(ValidationError, BasicCredential, "", "pw")
		self.assertRaises(ValidationError, BasicCredential, "user", "")
		self.assertRaises(ValidationError, BearerToken, "")


class BearerTokenTests(SynchronousTestCase):
	def test_header(self):
		self.assertEqual(BearerToken("abc.def.ghi").authorization_header(), "Bearer abc.def.ghi")

	def test_explicit_user(self):
		token = BearerToken(make_jwt({"upn": "other@contoso.com"}), user="me@contoso.com")
		self.assertEqual(token.principal(), "me@contoso.com")

	def test_principal_from_claims(self):
		self.assertEqual(BearerToken(make_jwt({"upn": "upn@contoso.com"})).principal(), "upn@contoso.com")
		self.assertEqual(BearerToken(make_jwt({"preferred_username": "p@contoso.com"})).principal(), "p@contoso.com")

	def test_unresolvable_principal(self):
		self.assertRaises(ValidationError, BearerToken("opaque-token").principal)
		self.assertRaises(ValidationError, BearerToken(make_jwt({"sub": "123"})).principal)
		self.assertRaises(ValidationError, BearerToken("a.!!!.c").principal)


class DeviceIdentityTests(SynchronousTestCase):
	def test_validation(self):
		self.assertRaises(ValidationError, DeviceIdentity, "")
		self.assertRaises(ValidationError, DeviceIdentity, "ABC", "")

	def test_generate(self):
		first = DeviceIdentity.generate()
		second = DeviceIdentity.generate("Android")
		self.assertEqual(len(first.device_id), 32)
		self.assertNotEqual(first.device_id, second.device_id)
		self.assertEqual(second.device_type, "Android")
