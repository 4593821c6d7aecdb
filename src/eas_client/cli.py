import sys
from twisted.internet import task
from twisted.python import log
from eas_client.activesync import ActiveSync, supported_commands, supported_versions
from eas_client.autodiscover import AutoDiscover
from eas_client.credentials import BasicCredential
from eas_client.device import DeviceIdentity, DeviceSettings
from eas_client.errors import EASError

USAGE = """Usage: eas-client <server hostname> <username> <password> <device ID> <command> [args] [-v]

Commands:
  probe                         list protocol versions and commands
  enroll                        provision the device, print the policy key
  folders                       print the folder hierarchy
  send <to> <subject> <html>    provision the device and send a message
  autodiscover                  resolve the ActiveSync url of <username>
"""

def options_result(headers):
	print("Versions", ",".join(supported_versions(headers)))
	print("Commands", ",".join(supported_commands(headers)))

def fsync_result(tree):
	print("FolderSync key", tree.sync_key)
	for (fid, finfo) in sorted(tree.folders.items()):
		print(fid, finfo.get("ParentId"), finfo.get("DisplayName"))

def print_result(result, label):
	print(label, result)

def report_error(failure):
	failure.trap(EASError)
	print("Error:", failure.getErrorMessage())
	raise SystemExit(1)

def run(reactor, server, username, password, device_id, command, *args, verbose=False):
	credential = BasicCredential(username, password)
	device = DeviceIdentity(device_id)
	settings = DeviceSettings(friendly_name="python-EAS-Client", os="Python", user_agent=device.user_agent)
	client = ActiveSync(server, reactor=reactor, verbose=verbose)
	if command == "probe":
		d = client.probe_capabilities(credential).addCallback(options_result)
	elif command == "enroll":
		d = client.enroll_device(credential, device, settings).addCallback(print_result, "Policy key")
	elif command == "folders":
		d = client.sync_folders(credential, device).addCallback(fsync_result)
	elif command == "send" and len(args) == 3:
		d = client.send_message(credential, device, args[0], args[1], args[2], settings=settings)
		d.addCallback(print_result, "Sent")
	elif command == "autodiscover":
		d = AutoDiscover(username, credential, reactor=reactor, verbose=verbose).autodiscover()
		d.addCallback(print_result, "ActiveSync url")
	else:
		print(USAGE)
		return None
	return d.addErrback(report_error)

def main(argv=None):
	argv = list(sys.argv[1:] if argv is None else argv)
	verbose = "-v" in argv
	if verbose:
		argv.remove("-v")
		log.startLogging(sys.stdout)
	if len(argv) < 5:
		print(USAGE)
		sys.exit(1)
	task.react(lambda reactor: run(reactor, *argv, verbose=verbose))

if __name__ == "__main__":
	main()
