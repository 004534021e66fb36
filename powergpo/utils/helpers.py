import os
import re
import logging
import ipaddress
import ntpath
import dns.exception
import dns.resolver
from dns import resolver
import validators

from impacket.examples.utils import parse_target

STORED_ADDR = {}

def sanitize_component(component):
	return re.sub(r'[^a-zA-Z0-9_.-]', '_', component) if component else component

def dn2domain(value):
	return '.'.join(re.findall(r'DC=([\w-]+)', value, re.I)).lower()

def domain2dn(domain):
	return ','.join("DC=%s" % (component) for component in domain.strip('.').split('.'))

def is_valid_fqdn(hostname: str) -> bool:
	if validators.domain(hostname):
		return True
	else:
		return False

def is_ipaddress(address):
	try:
		ipaddress.ip_address(address)
		return True
	except ValueError:
		return False

def is_valid_guid(value):
	guid_pattern = re.compile(r'^\{?[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\}?$')
	return bool(guid_pattern.match(value or ''))

def normalize_guid(value):
	"""Return the GUID in the {XXXXXXXX-...} form used by policy containers"""
	if not is_valid_guid(value):
		raise ValueError(f"Invalid GUID: {value}")
	return "{%s}" % (value.strip('{}').upper())

def naming_context(ldap_server, name):
	"""Read a RootDSE attribute off an ldap3 server, unwrapping single-value lists"""
	other = getattr(getattr(ldap_server, 'info', None), 'other', None) or {}
	value = other.get(name)
	if isinstance(value, list):
		value = value[0] if value else None
	return value

def is_global_catalog(ldap_server):
	value = naming_context(ldap_server, 'isGlobalCatalogReady')
	return str(value).upper() == 'TRUE'

def parse_unc_path(path):
	"""
	Split a UNC path into its host, share and share-relative path.

	\\\\contoso.local\\SysVol\\contoso.local\\Policies\\{GUID} ->
	('contoso.local', 'SysVol', 'contoso.local\\Policies\\{GUID}')
	"""
	if not path:
		raise ValueError("Empty UNC path")
	normalized = path.replace('/', '\\')
	if not normalized.startswith('\\\\'):
		raise ValueError(f"Not a UNC path: {path}")
	parts = [p for p in normalized[2:].split('\\') if p]
	if len(parts) < 2:
		raise ValueError(f"UNC path is missing a share: {path}")
	return parts[0], parts[1], ntpath.join(*parts[2:]) if len(parts) > 2 else ''

def parse_identity(args):
	domain, username, password, address = parse_target(args.target)

	if password == '' and username != '' and args.hashes is None and args.no_pass is False and args.auth_aes_key is None:
		from getpass import getpass
		password = getpass("Password:")

	if args.auth_aes_key is not None:
		args.use_kerberos = True

	if args.hashes is not None:
		if ":" not in args.hashes and len(args.hashes) == 32:
			args.hashes = ":" + args.hashes
		hashes = ("aad3b435b51404eeaad3b435b51404ee:".upper() + args.hashes.split(":")[1]).upper()
		lmhash, nthash = hashes.split(':')
	else:
		lmhash = ''
		nthash = ''

	return {'domain': domain, 'username': username, 'password': password, 'lmhash': lmhash, 'nthash': nthash, 'ldap_address': address}

def _get_resolver(nameserver=None, use_system_ns=True, lifetime=3):
	dnsresolver = None
	if use_system_ns:
		dnsresolver = resolver.Resolver()
	elif nameserver:
		dnsresolver = resolver.Resolver(configure=False)
		dnsresolver.nameservers = [nameserver]
	if dnsresolver:
		dnsresolver.lifetime = float(lifetime)
	return dnsresolver

def host2ip(hostname, nameserver=None, dns_timeout=10, dns_tcp=True, use_system_ns=True):
	if is_ipaddress(hostname):
		return hostname

	hostname = str(hostname).lower()
	if hostname in STORED_ADDR:
		return STORED_ADDR[hostname]

	dnsresolver = _get_resolver(nameserver, use_system_ns, dns_timeout)
	if not dnsresolver:
		logging.debug(f"Proxy-compatible mode: Returning hostname '{hostname}' without resolution")
		return hostname

	try:
		q = dnsresolver.resolve(hostname, 'A', tcp=dns_tcp)
		addr = [r.address for r in q]
		if not addr:
			logging.error(f"No address records found for {hostname}")
			return None
		if len(addr) > 1:
			logging.debug(f"Multiple IPs found. Selecting first IP for {hostname}: {addr[0]}")
		STORED_ADDR[hostname] = addr[0]
		logging.debug(f"Resolved {hostname} to {addr[0]}")
		return addr[0]
	except resolver.NXDOMAIN as e:
		logging.debug("Resolved Failed: %s" % e)
	except dns.exception.Timeout as e:
		logging.debug(str(e))
	except dns.resolver.NoNameservers as e:
		logging.debug(str(e))
	except dns.resolver.NoAnswer as e:
		logging.debug(str(e))
	return None

def _query_srv(dnsresolver, query, dns_tcp=True):
	try:
		q = dnsresolver.resolve(query, 'SRV', tcp=dns_tcp)
		targets = [str(r.target).rstrip('.') for r in sorted(q, key=lambda r: (r.priority, -r.weight))]
		logging.debug(f"{query} returned {', '.join(targets)}")
		return targets
	except resolver.NXDOMAIN as e:
		logging.debug(str(e))
	except dns.resolver.NoAnswer as e:
		logging.debug(str(e))
	except dns.resolver.NoNameservers as e:
		logging.debug(str(e))
	except dns.exception.Timeout:
		logging.debug(f"{query} timed out")
	return []

def get_principal_dc_address(domain, nameserver=None, dns_tcp=True, use_system_ns=True):
	"""
	Locate a domain controller for domain through its SRV records,
	preferring the PDC emulator. Returns the DC host name, None when nothing
	answers, or domain itself when no resolver is configured.
	"""
	dnsresolver = _get_resolver(nameserver, use_system_ns)
	if not dnsresolver:
		logging.debug(f"Proxy-compatible mode: Returning domain '{domain}' without DC resolution")
		return domain

	for basequery in [f'_ldap._tcp.pdc._msdcs.{domain}', f'_ldap._tcp.dc._msdcs.{domain}']:
		dcs = _query_srv(dnsresolver, basequery, dns_tcp)
		if dcs:
			return dcs[0]
	return None

def get_global_catalog_address(forest, nameserver=None, dns_tcp=True, use_system_ns=True):
	"""Locate a global catalog server for forest through _gc._tcp SRV records"""
	dnsresolver = _get_resolver(nameserver, use_system_ns)
	if not dnsresolver:
		logging.debug(f"Proxy-compatible mode: Returning forest '{forest}' without GC resolution")
		return forest

	for basequery in [f'_gc._tcp.{forest}', f'_ldap._tcp.gc._msdcs.{forest}']:
		gcs = _query_srv(dnsresolver, basequery, dns_tcp)
		if gcs:
			return gcs[0]
	return None

def find_file_casefold(directory, name):
	"""Return the path of name inside directory, matched case-insensitively"""
	candidate = os.path.join(directory, name)
	if os.path.isfile(candidate):
		return candidate
	try:
		for entry in os.listdir(directory):
			if entry.casefold() == name.casefold() and os.path.isfile(os.path.join(directory, entry)):
				return os.path.join(directory, entry)
	except OSError as e:
		logging.debug(f"Cannot list {directory}: {e}")
	return None

class IDict(dict):
	"""dict with case-insensitive get()"""
	def get(self, key, default=None):
		if isinstance(key, str):
			for k, v in self.items():
				if isinstance(k, str) and k.casefold() == key.casefold():
					return v
		return super().get(key, default)
