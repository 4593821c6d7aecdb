from eas_client.activesync import ActiveSync, FolderChange, FolderTree, supported_commands, supported_versions
from eas_client.autodiscover import AutoDiscover
from eas_client.commands import EASCommand
from eas_client.credentials import BasicCredential, BearerToken, ICredential
from eas_client.device import DeviceIdentity, DeviceSettings
from eas_client.errors import (EASError, ProtocolError, ProvisioningError, ProvisioningRequired, TransportError,
	ValidationError)
from eas_client.provisioning import Provisioning
from eas_client.transport import EASResponse, EASTransport, version
