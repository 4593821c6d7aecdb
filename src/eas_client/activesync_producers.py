import uuid
from email.header import Header
from email.mime.text import MIMEText
from email.utils import formatdate
from lxml import etree
from twisted.internet.defer import succeed
from twisted.web.iweb import IBodyProducer
from zope.interface import implementer
from eas_client.commands import EASCommand
from eas_client.errors import ValidationError

POLICY_TYPE = "MS-EAS-Provisioning-WBXML"
SETTINGS_NS = EASCommand.Settings.namespace

@implementer(IBodyProducer)
class XMLProducer(object):
	def __init__(self, root):
		self.root = root
		self.body = etree.tostring(root, xml_declaration=True, encoding="utf-8")
		self.length = len(self.body)
	def startProducing(self, consumer):
		consumer.write(self.body)
		return succeed(None)
	def pauseProducing(self): pass
	def resumeProducing(self): pass
	def stopProducing(self): pass

class CDATA(str):
	"""Marks a value to be written as unparsed character data."""

def convert_array_to_children(in_elem, in_val):
	if isinstance(in_val, list):
		parent_ns = etree.QName(in_elem).namespace
		for name, value in in_val:
			if not name.startswith("{"):
				name = "{%s}%s" % (parent_ns, name)
			add_elem = etree.SubElement(in_elem, name)
			convert_array_to_children(add_elem, value)
	elif isinstance(in_val, CDATA) and "]]>" not in in_val:
		in_elem.text = etree.CDATA(in_val)
	elif in_val is not None:
		in_elem.text = str(in_val)

def convert_dict_to_xml(indict, command, nsmap=None):
	assert len(indict) == 1 # must be only one root element
	(name, value), = indict.items()
	namespaces = {None: command.namespace}
	namespaces.update(nsmap or {})
	root = etree.Element(command.qname(name), nsmap=namespaces)
	convert_array_to_children(root, value)
	return root

def device_information(settings):
	return ("{%s}DeviceInformation" % SETTINGS_NS, [
		("Set", settings.elements())
	])

def require(**values):
	for name, value in values.items():
		if not value:
			raise ValidationError("%s is required" % name.replace("_", " "))

def new_client_id():
	return str(uuid.uuid4()).replace("-","").upper()[:32]


# Builders

def build_folder_sync(sync_key="0"):
	sync_key = "" if sync_key is None else str(sync_key)
	require(sync_key=sync_key)
	return convert_dict_to_xml({
		"FolderSync": [
			("SyncKey", sync_key)
		]
	}, EASCommand.FolderSync)

def build_mime_message(sender, recipient, subject, body_html, message_id):
	require(sender=sender, recipient=recipient, subject=subject, message_id=message_id)
	msg = MIMEText(body_html or "", "html", "utf-8")
	msg["From"] = sender
	msg["To"] = recipient
	msg["Subject"] = Header(subject, "utf-8")
	msg["Date"] = formatdate(localtime=True)
	msg["Message-ID"] = "<%s>" % message_id
	return msg.as_string()

def build_send_mail(client_id, mime, save_in_sent_items=True):
	require(client_id=client_id, mime=mime)
	body = [("ClientId", client_id)]
	if save_in_sent_items:
		body.append(("SaveInSentItems", None))
	body.append(("Mime", CDATA(mime)))
	return convert_dict_to_xml({"SendMail": body}, EASCommand.SendMail)

def build_settings(settings):
	return convert_dict_to_xml({
		"Settings": [
			("DeviceInformation", [
				("Set", settings.elements())
			])
		]
	}, EASCommand.Settings)

def build_provision(settings=None, policy_key=None, status="1"):
	"""Provision request body.

	Without a policy key this is the initial offer request, carrying the
	device information when settings are given. With a key it is the
	acknowledgement of that key, with the given policy status.
	"""
	policy = [("PolicyType", POLICY_TYPE)]
	if policy_key is not None:
		require(policy_key=policy_key, status=status)
		policy.append(("PolicyKey", policy_key))
		policy.append(("Status", str(status)))
	body = []
	if settings is not None:
		body.append(device_information(settings))
	body.append(("Policies", [("Policy", policy)]))
	return convert_dict_to_xml({"Provision": body}, EASCommand.Provision, {"settings": SETTINGS_NS})


class FolderSyncProducer(XMLProducer):
	def __init__(self, sync_key="0"):
		XMLProducer.__init__(self, build_folder_sync(sync_key))

class SendMailProducer(XMLProducer):
	def __init__(self, client_id, mime, save_in_sent_items=True):
		XMLProducer.__init__(self, build_send_mail(client_id, mime, save_in_sent_items))

class SettingsProducer(XMLProducer):
	def __init__(self, settings):
		XMLProducer.__init__(self, build_settings(settings))

class ProvisionProducer(XMLProducer):
	def __init__(self, settings=None, policy_key=None, status="1"):
		XMLProducer.__init__(self, build_provision(settings, policy_key, status))
