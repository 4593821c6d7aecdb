from enum import Enum


class EASCommand(Enum):
	# (Cmd value, XML namespace, response root, empty 2xx body accepted)
	FolderSync = ("FolderSync", "FolderHierarchy:", "FolderSync", False)
	SendMail = ("SendMail", "ComposeMail:", "SendMail", True)
	Settings = ("Settings", "Settings:", "Settings", False)
	Provision = ("Provision", "Provision:", "Provision", False)
	Options = ("Options", None, None, True)
	Sync = ("Sync", "AirSync:", "Sync", True)
	Ping = ("Ping", "Ping:", "Ping", False)
	GetItemEstimate = ("GetItemEstimate", "GetItemEstimate:", "GetItemEstimate", False)
	ItemOperations = ("ItemOperations", "ItemOperations:", "ItemOperations", False)

	def __init__(self, cmd, namespace, response_root, empty_ok):
		self.cmd = cmd
		self.namespace = namespace
		self.response_root = response_root
		self.empty_ok = empty_ok

	def qname(self, tag=None):
		return "{%s}%s" % (self.namespace, tag or self.response_root)
