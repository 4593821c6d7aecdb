import uuid
from dataclasses import dataclass, fields
from typing import Optional
from eas_client.errors import ValidationError


@dataclass(frozen=True)
class DeviceIdentity:
	"""The device row the server keeps for this client."""

	device_id: str
	device_type: str = "iPhone"
	user_agent: Optional[str] = None

	def __post_init__(self):
		if not self.device_id:
			raise ValidationError("device id is required")
		if not self.device_type:
			raise ValidationError("device type is required")

	@classmethod
	def generate(cls, device_type="iPhone", user_agent=None):
		return cls(uuid.uuid4().hex.upper()[:32], device_type, user_agent)


# Attribute name -> element name in the Settings: namespace, in wire order
SETTINGS_ELEMENTS = (
	("model", "Model"),
	("imei", "IMEI"),
	("friendly_name", "FriendlyName"),
	("os", "OS"),
	("os_language", "OSLanguage"),
	("phone_number", "PhoneNumber"),
	("mobile_operator", "MobileOperator"),
	("user_agent", "UserAgent"),
)


@dataclass(frozen=True)
class DeviceSettings:
	"""Device information reported with Settings and Provision.

	Every field is sent on every call. A field left as None is sent as an
	empty element, which clears that attribute on the server.
	"""

	model: Optional[str] = None
	imei: Optional[str] = None
	friendly_name: Optional[str] = None
	os: Optional[str] = None
	os_language: Optional[str] = None
	phone_number: Optional[str] = None
	mobile_operator: Optional[str] = None
	user_agent: Optional[str] = None

	def __post_init__(self):
		for f in fields(self):
			value = getattr(self, f.name)
			if value is not None and not isinstance(value, str):
				raise ValidationError("%s must be a string, got %r" % (f.name, value))

	def elements(self):
		return [(element, getattr(self, attr)) for attr, element in SETTINGS_ELEMENTS]
