from twisted.internet import defer
from twisted.python import log
from eas_client.activesync_producers import ProvisionProducer
from eas_client.commands import EASCommand
from eas_client.device import DeviceSettings
from eas_client.errors import ProvisioningError
from eas_client.transport import find_path, find_text

UNPROVISIONED = "unprovisioned"
OFFERED = "offered"
ACKNOWLEDGED = "acknowledged"
FAILED = "failed"

ACCEPT = "1"


def mask(policy_key):
	if not policy_key:
		return policy_key
	return "..." + policy_key[-4:]


class Provisioning:
	"""Two-round Provision handshake for one device.

	unprovisioned -> offered -> acknowledged, or failed from any state.
	The offer request is sent twice before the acknowledgement; see
	repeat_offer(). A handshake runs once, a new enrollment needs a new
	Provisioning.
	"""

	def __init__(self, transport, credential, device, settings=None, verbose=False):
		self.transport = transport
		self.credential = credential
		self.device = device
		self.settings = settings if settings is not None else DeviceSettings()
		self.verbose = verbose
		self.state = UNPROVISIONED
		self.policy_key = None
		self.started = False

	def __repr__(self):
		return "<Provisioning %s %s>" % (self.device.device_id, self.state)

	def run(self):
		if self.started:
			return defer.fail(ProvisioningError(ProvisioningError.OFFER, "handshake already %s" % self.state))
		self.started = True
		d = self.offer(validate=False)
		d.addCallback(self.repeat_offer)
		d.addCallback(self.acknowledge)
		d.addErrback(self.provisioning_failed)
		return d

	# Rounds

	def offer(self, validate=True):
		d = self.transport.invoke(EASCommand.Provision, ProvisionProducer(self.settings),
			self.credential, self.device)
		if validate:
			d.addCallback(self.process_policy_key, ProvisioningError.OFFER)
		else:
			d.addCallback(self.offer_key)
		d.addErrback(self.round_failed, ProvisioningError.OFFER)
		return d

	def repeat_offer(self, first_key):
		# The server expects the initial Provision request of a device to be
		# sent twice and only honours the key minted for the second one. Both
		# requests always go out; the first response's status and key are
		# ignored.
		if self.verbose: log.msg("FIRST OFFER POLICY KEY %s, repeating offer" % mask(first_key))
		d = self.offer()
		d.addCallback(self.offered)
		return d

	def offered(self, policy_key):
		self.state = OFFERED
		self.policy_key = policy_key
		return policy_key

	def acknowledge(self, policy_key):
		d = self.transport.invoke(EASCommand.Provision, ProvisionProducer(policy_key=policy_key, status=ACCEPT),
			self.credential, self.device, policy_key=policy_key)
		d.addCallback(self.process_policy_key, ProvisioningError.ACKNOWLEDGE)
		d.addErrback(self.round_failed, ProvisioningError.ACKNOWLEDGE)
		d.addCallback(self.acknowledge_result)
		return d

	def acknowledge_result(self, policy_key):
		log.msg("Device %s provisioned, policy key %s" % (self.device.device_id, mask(policy_key)))
		self.state = ACKNOWLEDGED
		self.policy_key = policy_key
		return policy_key

	# Response processing

	def offer_key(self, response):
		return find_text(find_path(response.document, "Policies", "Policy"), "PolicyKey")

	def process_policy_key(self, response, round):
		status = find_text(response.document, "Status")
		if status is not None and status != ACCEPT:
			raise ProvisioningError(round, "Provision status %s" % status)
		policy = find_path(response.document, "Policies", "Policy")
		policy_status = find_text(policy, "Status")
		if policy_status is not None and policy_status != ACCEPT:
			raise ProvisioningError(round, "policy status %s" % policy_status)
		policy_key = find_text(policy, "PolicyKey")
		if not policy_key:
			raise ProvisioningError(round, "response carries no policy key")
		return policy_key

	def round_failed(self, failure, round):
		if failure.check(ProvisioningError):
			return failure
		reason = failure.getErrorMessage() or failure.type.__name__
		raise ProvisioningError(round, reason, failure.value) from failure.value

	def provisioning_failed(self, failure):
		self.state = FAILED
		self.policy_key = None
		log.msg("Provisioning %s failed: %s" % (self.device.device_id, failure.getErrorMessage()))
		return failure
