from dataclasses import dataclass, field
from twisted.internet import defer
from twisted.python import log
from eas_client.activesync_producers import (FolderSyncProducer, SendMailProducer, SettingsProducer,
	build_mime_message, new_client_id)
from eas_client.commands import EASCommand
from eas_client.device import DeviceSettings
from eas_client.errors import ProtocolError, ProvisioningRequired
from eas_client.provisioning import Provisioning
from eas_client.transport import (COMMAND_TIMEOUT, DEFAULT_PROTOCOL_VERSION, PROBE_TIMEOUT, EASTransport,
	child_elements, find_path, find_text, local_name)

# Command statuses meaning the device has to (re)run the Provision handshake
PROVISIONING_STATUSES = range(139, 145)


@dataclass
class FolderChange:
	action: str
	fields: dict

	@property
	def server_id(self):
		return self.fields.get("ServerId")

	@property
	def display_name(self):
		return self.fields.get("DisplayName")


@dataclass
class FolderTree:
	status: str
	sync_key: str
	count: int = 0
	changes: list = field(default_factory=list)

	@property
	def folders(self):
		return dict((change.server_id, change.fields) for change in self.changes if change.action == "Add")


def header_values(headers, name):
	for k, values in headers.items():
		if k.lower() == name.lower():
			return [v.strip() for value in values for v in value.split(",") if v.strip()]
	return []

def supported_versions(headers):
	return header_values(headers, "MS-ASProtocolVersions")

def supported_commands(headers):
	return header_values(headers, "MS-ASProtocolCommands")


class ActiveSync:
	def __init__(self, server, use_ssl=True, server_version=DEFAULT_PROTOCOL_VERSION, command_timeout=COMMAND_TIMEOUT,
			probe_timeout=PROBE_TIMEOUT, agent=None, reactor=None, verbose=False):
		self.transport = EASTransport(server, use_ssl, server_version, command_timeout, probe_timeout,
			agent=agent, reactor=reactor, verbose=verbose)
		self.verbose = verbose

	# Response processing

	def command_status(self, response, command):
		status = find_text(response.document, "Status") if response.document is not None else None
		if status is None or status == "1":
			return response
		if status.isdigit() and int(status) in PROVISIONING_STATUSES:
			raise ProvisioningRequired("%s status %s: device must be provisioned" % (command.cmd, status), status=status)
		raise ProtocolError("%s status %s" % (command.cmd, status), status=status)

	def process_folder_sync(self, response):
		document = response.document
		sync_key = find_text(document, "SyncKey")
		if sync_key is None:
			raise ProtocolError("FolderSync response carries no SyncKey")
		tree = FolderTree(find_text(document, "Status"), sync_key)
		changes = find_path(document, "Changes")
		for change in child_elements(changes) if changes is not None else []:
			if local_name(change) == "Count":
				try:
					tree.count = int((change.text or "0").strip())
				except ValueError:
					raise ProtocolError("FolderSync Count is not a number: %r" % change.text)
				continue
			tree.changes.append(FolderChange(local_name(change),
				dict((local_name(e), (e.text or "").strip()) for e in child_elements(change))))
		if self.verbose: log.msg("FolderSync key %s, %d changes" % (tree.sync_key, len(tree.changes)))
		return tree

	def process_settings(self, response):
		device_status = find_text(response.document, "DeviceInformation", "Status")
		if device_status is not None and device_status != "1":
			raise ProtocolError("Settings DeviceInformation status %s" % device_status, status=device_status)
		return response.document

	def message_sent(self, response, client_id, recipient):
		log.msg("Sent message %s to %s" % (client_id, recipient))
		return client_id

	# Supported operations

	def probe_capabilities(self, credential):
		"""OPTIONS probe. Fires with every response header, name -> list of values.

		Header names are case-normalized by Twisted; use header_values() or
		supported_versions() rather than exact-case lookups.
		"""
		d = self.transport.options(credential)
		d.addCallback(lambda response: response.header_map())
		return d

	def sync_folders(self, credential, device, policy_key=None):
		"""Full FolderSync (sync key 0). Fires with a FolderTree."""
		return defer.maybeDeferred(self._sync_folders, credential, device, policy_key)

	def _sync_folders(self, credential, device, policy_key):
		d = self.transport.invoke(EASCommand.FolderSync, FolderSyncProducer("0"), credential, device, policy_key)
		d.addCallback(self.command_status, EASCommand.FolderSync)
		d.addCallback(self.process_folder_sync)
		return d

	def enroll_device(self, credential, device, settings):
		"""Run the Provision handshake. Fires with the final policy key."""
		return Provisioning(self.transport, credential, device, settings, self.verbose).run()

	def update_device_settings(self, credential, device, settings, policy_key=None):
		"""Settings/DeviceInformation/Set. Fires with the response document."""
		return defer.maybeDeferred(self._update_device_settings, credential, device, settings, policy_key)

	def _update_device_settings(self, credential, device, settings, policy_key):
		d = self.transport.invoke(EASCommand.Settings, SettingsProducer(settings), credential, device, policy_key)
		d.addCallback(self.command_status, EASCommand.Settings)
		d.addCallback(self.process_settings)
		return d

	def send_message(self, credential, device, recipient, subject, body_html, policy_key=None, provision=True,
			settings=None, save_in_sent_items=True):
		"""SendMail a single HTML message. Fires with its message id.

		Without a policy key the device is enrolled first, unless provision
		is False, in which case the message is sent unprovisioned.
		"""
		return defer.maybeDeferred(self._send_message, credential, device, recipient, subject, body_html,
			policy_key, provision, settings, save_in_sent_items)

	def _send_message(self, credential, device, recipient, subject, body_html, policy_key, provision, settings,
			save_in_sent_items):
		client_id = new_client_id()
		mime = build_mime_message(credential.principal(), recipient, subject, body_html, client_id)
		producer = SendMailProducer(client_id, mime, save_in_sent_items)
		if policy_key is None and provision:
			d = self.enroll_device(credential, device, settings or DeviceSettings())
		else:
			d = defer.succeed(policy_key)
		d.addCallback(self.send_mail, producer, credential, device)
		d.addCallback(self.command_status, EASCommand.SendMail)
		d.addCallback(self.message_sent, client_id, recipient)
		return d

	def send_mail(self, policy_key, producer, credential, device):
		return self.transport.invoke(EASCommand.SendMail, producer, credential, device, policy_key)
