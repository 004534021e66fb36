import argparse
import sys
import logging

from powergpo.utils.completer import COMMANDS
from powergpo.utils.colors import bcolors
from powergpo.utils.helpers import parse_identity
from powergpo.utils.constants import VERSION_TYPES, VERSION_BOTH, LINK_SCOPES, SCOPE_DOMAIN
from powergpo._version import BANNER, __version__

# https://stackoverflow.com/questions/14591168/argparse-dont-show-usage-on-h
class PowerGPOParser(argparse.ArgumentParser):
	def error(self, message):
		print(message)
		sys.exit(0)

def arg_parse():
	parser = PowerGPOParser(description = f"Group Policy maintenance helpers over LDAP and SMB, version {bcolors.OKBLUE + __version__ + bcolors.ENDC}")
	parser.add_argument('target', action='store', metavar='target', help='[[domain/]username[:password]@]<targetName or address>')
	parser.add_argument('-p','--port', dest='port', action='store', help='LDAP server port. (Default: 389|636)', type=int)
	parser.add_argument('-d','--debug', dest='debug', action='store_true', help='Enable debug output')
	parser.add_argument('--stack-trace', dest='stack_trace', action='store_true', help='raise exceptions and exit if unhandled errors')
	parser.add_argument('-q','--query', dest='query', action='store', help='PowerGPO query to be executed one-time')

	ns_group_parser = parser.add_mutually_exclusive_group()
	ns_group_parser.add_argument('--use-system-nameserver', action='store_true', default=False, dest='use_system_ns', help='Use system nameserver to resolve hostname/domain')
	ns_group_parser.add_argument('-ns','--nameserver', dest='nameserver', action='store', help='Specify custom nameserver. If not specified, domain controller will be used instead')
	parser.add_argument('-v','--version', dest='version', action='version',version=BANNER)

	protocol = parser.add_argument_group('protocol')
	group = protocol.add_mutually_exclusive_group()
	group.add_argument('--use-ldap', dest='use_ldap', action='store_true', help='[Optional] Use LDAP instead of LDAPS')
	group.add_argument('--use-ldaps', dest='use_ldaps', action='store_true', help='[Optional] Use LDAPS instead of LDAP')

	auth = parser.add_argument_group('authentication')
	auth.add_argument('-H','--hashes', action="store", metavar = "LMHASH:NTHASH", help='NTLM hashes, format is LMHASH:NTHASH')
	auth.add_argument("-k", "--kerberos", dest="use_kerberos", action="store_true", help='Use Kerberos authentication. Grabs credentials from .ccache file (KRB5CCNAME) based on target parameters. If valid credentials cannot be found, it will use the ones specified in the command line')
	auth.add_argument("--use-simple-auth", dest="use_simple_auth", action="store_true", default=False, help='Authenticate with SIMPLE authentication')
	auth.add_argument('--no-pass', action="store_true", help="don't ask for password (useful for -k)")
	auth.add_argument('--aes-key', dest="auth_aes_key", action="store", metavar = "hex key", help='AES key to use for Kerberos Authentication \'(128 or 256 bits)\'')
	auth.add_argument("--dc-ip", action='store', metavar='IP address', help='IP Address of the domain controller or KDC (Key Distribution Center) for Kerberos. If omitted it will use the domain part (FQDN) specified in the identity parameter')

	if len(sys.argv) == 1:
		parser.print_help()
		sys.exit(1)

	args = parser.parse_args()

	parsed_identity = parse_identity(args)
	args.domain = parsed_identity['domain']
	args.username = parsed_identity['username']
	args.password = parsed_identity['password']
	args.lmhash = parsed_identity['lmhash']
	args.nthash = parsed_identity['nthash']
	args.ldap_address = parsed_identity['ldap_address']

	if not args.ldap_address:
		logging.error("No target address supplied. Exiting...")
		sys.exit(0)

	return args

class Helper:
	def parse_select(value):
		"""Parse the select argument into a list or return the digit if value is a digit."""
		if value and value.isdigit():
			return int(value)
		return value.strip().split(',') if value else []

	def parse_tableview(value):
		"""Parse the tableview argument into a list or return the digit if value is a digit."""
		VALID_TABLE_VIEWS = ["md", "csv", "default"]
		if value and value.lower() not in VALID_TABLE_VIEWS:
			raise ValueError(f"Invalid tableview: {value}. Valid options are: {', '.join(VALID_TABLE_VIEWS)}")
		return value

	def parse_choice(choices):
		"""Case-insensitive argparse type returning the canonical spelling"""
		def _parse(value):
			for choice in choices:
				if value.casefold() == choice.casefold():
					return choice
			raise ValueError(f"Invalid value: {value}. Valid options are: {', '.join(choices)}")
		_parse.__name__ = 'choice'
		return _parse

def _add_output_arguments(parser):
	parser.add_argument('-Select', action='store', dest='select', type=Helper.parse_select)
	parser.add_argument('-TableView', nargs='?', const='default', default='', dest='tableview', help="Format the output as a table. Options: 'md', 'csv'. Defaults to standard table if no value is provided.", type=Helper.parse_tableview)
	parser.add_argument('-OutFile', action='store', dest='outfile')
	parser.add_argument('-Count', action='store_true', dest='count')

def powergpo_arg_parse(cmd):
	parser = PowerGPOParser(exit_on_error=False)
	subparsers = parser.add_subparsers(dest='module')

	# update gpo version
	update_gpoversion_parser = subparsers.add_parser('Update-GPOVersion', exit_on_error=False)
	update_gpoversion_identity = update_gpoversion_parser.add_mutually_exclusive_group()
	update_gpoversion_identity.add_argument('-GUID', action='store', nargs='+', dest='guid')
	update_gpoversion_identity.add_argument('-Name', action='store', nargs='+', dest='name')
	update_gpoversion_parser.add_argument('-VersionType', action='store', dest='version_type', default=VERSION_BOTH, type=Helper.parse_choice(VERSION_TYPES))
	update_gpoversion_parser.add_argument('-Domain', action='store', dest='domain')
	update_gpoversion_parser.add_argument('-Server', action='store', dest='server')
	update_gpoversion_parser.add_argument('-SysvolPath', action='store', dest='sysvol_path')
	update_gpoversion_parser.add_argument('-WhatIf', action='store_true', default=False, dest='whatif')
	_add_output_arguments(update_gpoversion_parser)

	# get gplink
	get_gplink_parser = subparsers.add_parser('Get-GPLink', exit_on_error=False)
	get_gplink_identity = get_gplink_parser.add_mutually_exclusive_group()
	get_gplink_identity.add_argument('-GUID', action='store', dest='guid')
	get_gplink_identity.add_argument('-Name', action='store', dest='name')
	get_gplink_parser.add_argument('-Scope', action='store', dest='scope', default=SCOPE_DOMAIN, type=Helper.parse_choice(LINK_SCOPES))
	get_gplink_parser.add_argument('-Target', action='store', dest='target')
	get_gplink_parser.add_argument('-Domain', action='store', dest='domain')
	get_gplink_parser.add_argument('-Server', action='store', dest='server')
	_add_output_arguments(get_gplink_parser)

	# get gpo backup
	get_gpobackup_parser = subparsers.add_parser('Get-GPOBackup', exit_on_error=False)
	get_gpobackup_parser.add_argument('-Path', action='store', dest='path')
	get_gpobackup_identity = get_gpobackup_parser.add_mutually_exclusive_group()
	get_gpobackup_identity.add_argument('-GUID', action='store', dest='guid')
	get_gpobackup_identity.add_argument('-Name', action='store', dest='name')
	_add_output_arguments(get_gpobackup_parser)

	subparsers.add_parser('whoami', exit_on_error=False)
	subparsers.add_parser('clear', exit_on_error=False)
	subparsers.add_parser('exit', exit_on_error=False)

	try:
		args, unknown = parser.parse_known_args(cmd)

		if unknown:
			flags = [unk for unk in unknown if unk.startswith('-')]
			if flags:
				# flags are case-insensitive, rewrite them and parse again
				known_flags = COMMANDS.get(cmd[0]) or []
				for unk in flags:
					matches = [item for item in known_flags if item.casefold() == unk.casefold()]
					if not matches:
						print(f"Unrecognized argument: {unk}")
						return None
					cmd = [matches[0] if c == unk else c for c in cmd]
				return parser.parse_args(cmd)

			for unk in unknown:
				if hasattr(args, 'path') and not args.path:
					args.path = unk
				elif args.module == 'Update-GPOVersion' and not args.guid:
					args.name = (args.name or []) + [unk]
				elif hasattr(args, 'name') and not args.name and not getattr(args, 'guid', None):
					args.name = unk
				else:
					print(f"Unrecognized argument: {unk}")
					return None

		return args
	except argparse.ArgumentError as e:
		for i in list(COMMANDS.keys()):
			if cmd and cmd[0].casefold() == i.casefold() and cmd[0] != i:
				cmd[0] = i
				return powergpo_arg_parse(cmd)

		if "module" in str(e):
			print("Invalid command")
		else:
			print(str(e))

		return None
	except SystemExit:
		return None
