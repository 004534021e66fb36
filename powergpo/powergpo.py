#!/usr/bin/env python3
from impacket.smbconnection import SessionError

from powergpo.modules.gpo import GPO, GPOIdentity, GPOVersion
from powergpo.modules.backup import GPOBackup, ManifestError
from powergpo.lib.transaction import GPTTransaction, GPTTransactionError
from powergpo.utils.storage import LocalStorage, SMBStorage
from powergpo.utils.helpers import (
	dn2domain,
	domain2dn,
	naming_context,
	is_global_catalog,
	parse_unc_path,
)
from powergpo.utils.constants import (
	GPT_INI,
	GPO_DEFAULT_PROPERTIES,
	GPLINK_PROPERTIES,
	VERSION_BOTH,
	SCOPE_TARGET,
	SCOPE_DOMAIN,
	SCOPE_SITES,
	LINK_SCOPES,
)

import ldap3
from ldap3.utils.conv import escape_filter_chars
import ntpath
import logging

def _attribute(entry, name, default=None):
	value = entry.get('attributes', {}).get(name, default)
	if isinstance(value, list):
		if len(value) == 0:
			return default
		return value[0] if len(value) == 1 else value
	return value

class PowerGPO:
	def __init__(self, conn, args):
		self.conn = conn
		self.args = args
		self.domain = self.conn.get_domain()

		self.ldap_server, self.ldap_session = self.conn.init_ldap_session()
		self._initialize_attributes_from_connection()

	def _initialize_attributes_from_connection(self):
		self.root_dn = naming_context(self.ldap_server, "defaultNamingContext")
		self.forest_dn = naming_context(self.ldap_server, "rootDomainNamingContext")
		self.configuration_dn = naming_context(self.ldap_server, "configurationNamingContext")
		self.dc_dnshostname = naming_context(self.ldap_server, "dnsHostName")
		if not self.domain and self.root_dn:
			self.domain = dn2domain(self.root_dn)

	def get_server_dns(self):
		return self.dc_dnshostname

	def _resolve_server(self, domain, server=None):
		if server:
			return server
		return self.conn.find_domain_controller(domain)

	def get_domaingpo(self, identity, domain=None, ldap_session=None, properties=None):
		"""
		Search the Policies container of domain for groupPolicyContainer
		objects matching identity (GPOIdentity).
		"""
		domain = domain or self.domain
		ldap_session = ldap_session or self.ldap_session
		properties = properties or GPO_DEFAULT_PROPERTIES

		searchbase = "CN=Policies,CN=System,%s" % (domain2dn(domain))
		if identity.is_guid:
			identity_filter = f"(cn={escape_filter_chars(identity.value)})"
		else:
			identity_filter = f"(displayName={escape_filter_chars(identity.value)})"

		ldap_filter = f"(&(objectCategory=groupPolicyContainer){identity_filter})"
		logging.debug(f"[Get-DomainGPO] LDAP search filter: {ldap_filter}")
		entries = ldap_session.extend.standard.paged_search(
			searchbase,
			ldap_filter,
			attributes=list(properties),
			paged_size=1000,
			generator=False
		)
		return [entry for entry in entries if entry.get('type', 'searchResEntry') == 'searchResEntry']

	def _get_single_gpo(self, identity, domain, ldap_session, tag):
		try:
			entries = self.get_domaingpo(identity, domain=domain, ldap_session=ldap_session)
		except ldap3.core.exceptions.LDAPNoSuchObjectResult:
			entries = []

		if len(entries) == 0:
			logging.error(f"{tag} GPO {identity} not found in {domain}")
			return None
		elif len(entries) > 1:
			logging.error(f"{tag} More than one GPO found for {identity} in {domain}")
			return None

		logging.debug(f"{tag} Found GPO {_attribute(entries[0], 'distinguishedName')}")
		return entries[0]

	def _get_gpt_storage(self, server, filesyspath, sysvol_path=None):
		"""Return (storage, path of GPT.INI on that storage)"""
		host, share, share_path = parse_unc_path(filesyspath)
		gpt_path = ntpath.join(share_path, GPT_INI)

		if sysvol_path:
			logging.debug(f"[Update-GPOVersion] Using local SYSVOL mount {sysvol_path}")
			return LocalStorage(sysvol_path), gpt_path

		smbconn = self.conn.init_smb_session(server)
		return SMBStorage(smbconn, share), gpt_path

	def _set_versionnumber(self, ldap_session, dn, version):
		try:
			succeeded = ldap_session.modify(dn, {'versionNumber': [(ldap3.MODIFY_REPLACE, [str(version.to_directory())])]})
		except ldap3.core.exceptions.LDAPException as e:
			logging.error(f"[Update-GPOVersion] Failed to update versionNumber on {dn} ({str(e)})")
			return False

		if not succeeded:
			logging.error(f"[Update-GPOVersion] Failed to update versionNumber on {dn} ({ldap_session.result.get('description')})")
			return False
		return True

	@staticmethod
	def _version_entry(gpo, old, new, status):
		return {
			'attributes': {
				'displayName': _attribute(gpo, 'displayName'),
				'name': _attribute(gpo, 'name'),
				'distinguishedName': _attribute(gpo, 'distinguishedName'),
				'OldVersion': old.to_int(),
				'NewVersion': new.to_int(),
				'UserVersion': new.user,
				'ComputerVersion': new.computer,
				'Status': status,
			}
		}

	def update_gpoversion(self, identities=None, version_type=VERSION_BOTH, domain=None, server=None, whatif=False, sysvol_path=None, storage=None, args=None):
		"""
		Increment the user and/or computer version of each GPO in identities,
		in GPT.INI first and then in the directory. A failed directory write
		restores GPT.INI from its backup.
		"""
		if args:
			guids = getattr(args, 'guid', None)
			names = getattr(args, 'name', None)
			if guids and names:
				raise ValueError("GUID and Name are mutually exclusive")
			identities = [GPOIdentity.from_name(n) for n in (names or [])]
			for guid in guids or []:
				try:
					identities.append(GPOIdentity.from_guid(guid))
				except ValueError:
					logging.error(f"[Update-GPOVersion] Invalid GUID {guid}")
			if guids and not identities:
				return []
		version_type = args.version_type if hasattr(args, 'version_type') and args.version_type else version_type
		domain = args.domain if hasattr(args, 'domain') and args.domain else domain
		server = args.server if hasattr(args, 'server') and args.server else server
		whatif = args.whatif if hasattr(args, 'whatif') and args.whatif else whatif
		sysvol_path = args.sysvol_path if hasattr(args, 'sysvol_path') and args.sysvol_path else sysvol_path
		domain = domain or self.domain

		if not identities:
			logging.error("[Update-GPOVersion] No GPO specified")
			return []

		entries = []
		for identity in identities:
			entry = self._update_single_gpoversion(identity, version_type, domain, server, whatif, sysvol_path, storage)
			if entry:
				entries.append(entry)
		return entries

	def _update_single_gpoversion(self, identity, version_type, domain, server, whatif, sysvol_path, storage):
		server = self._resolve_server(domain, server)
		if not server:
			logging.error(f"[Update-GPOVersion] No domain controller found for {domain}")
			return None

		_, ldap_session = self.conn.init_ldap_session(server)
		gpo = self._get_single_gpo(identity, domain, ldap_session, "[Update-GPOVersion]")
		if not gpo:
			return None

		dn = _attribute(gpo, 'distinguishedName')
		display_name = _attribute(gpo, 'displayName', identity.value)
		filesyspath = _attribute(gpo, 'gPCFileSysPath')
		current = GPOVersion.from_int(_attribute(gpo, 'versionNumber', 0) or 0)
		new = current.increment(version_type)

		if not filesyspath:
			logging.error(f"[Update-GPOVersion] {display_name} has no gPCFileSysPath")
			return None

		try:
			if storage:
				gpt_path = ntpath.join(parse_unc_path(filesyspath)[2], GPT_INI)
				gpt_storage = storage
			else:
				gpt_storage, gpt_path = self._get_gpt_storage(server, filesyspath, sysvol_path)

			if not gpt_storage.exists(gpt_path):
				logging.error(f"[Update-GPOVersion] {gpt_path} not found for {display_name}")
				return None
			text, encoding = GPO.Helper.decode_content(gpt_storage.read(gpt_path))
		except (SessionError, OSError, ConnectionError, ValueError) as e:
			logging.error(f"[Update-GPOVersion] Failed to read GPT.INI of {display_name} ({str(e)})")
			return None

		file_version = GPO.Helper.read_gpt_version(text)
		if file_version is None:
			logging.error(f"[Update-GPOVersion] No Version entry in {gpt_path}")
			return None
		if (file_version & 0xFFFFFFFF) != current.to_int():
			logging.warning(f"[Update-GPOVersion] {gpt_path} version {file_version} differs from directory version {current}")

		new_content = GPO.Helper.set_gpt_version(text, new.to_int()).encode(encoding)

		if whatif:
			logging.info(f"[Update-GPOVersion] WhatIf: {display_name} version {current} -> {new} ({version_type})")
			return self._version_entry(gpo, current, new, "WhatIf")

		transaction = GPTTransaction(gpt_storage, gpt_path)
		try:
			transaction.begin()
			transaction.write(new_content)
		except GPTTransactionError as e:
			logging.error(f"[Update-GPOVersion] {str(e)}. Directory left unchanged")
			return None

		if not self._set_versionnumber(ldap_session, dn, new):
			try:
				transaction.rollback()
				logging.warning(f"[Update-GPOVersion] Restored {gpt_path} from backup")
			except GPTTransactionError as e:
				logging.error(f"[Update-GPOVersion] {str(e)}")
			return None

		transaction.commit()
		logging.info(f"[Update-GPOVersion] Updated {display_name} version {current} -> {new}")
		return self._version_entry(gpo, current, new, "Updated")

	def get_gplink(self, identity=None, scope=SCOPE_DOMAIN, target=None, domain=None, server=None, args=None):
		"""
		List containers whose gPLink references the GPO, within a target
		container, a domain, the sites container or the whole forest.
		"""
		if args:
			identities = GPOIdentity.from_args(
				[args.guid] if getattr(args, 'guid', None) else None,
				[args.name] if getattr(args, 'name', None) else None
			)
			identity = identities[0] if identities else None
		scope = args.scope if hasattr(args, 'scope') and args.scope else scope
		target = args.target if hasattr(args, 'target') and args.target else target
		domain = args.domain if hasattr(args, 'domain') and args.domain else domain
		server = args.server if hasattr(args, 'server') and args.server else server
		domain = domain or self.domain

		if not identity:
			logging.error("[Get-GPLink] No GPO specified")
			return []
		if scope not in LINK_SCOPES:
			logging.error(f"[Get-GPLink] Invalid scope {scope}. Valid options are: {', '.join(LINK_SCOPES)}")
			return []
		if scope == SCOPE_TARGET and not target:
			logging.error("[Get-GPLink] -Target is required with Target scope")
			return []

		server = self._resolve_server(domain, server)
		if not server:
			logging.warning(f"[Get-GPLink] No domain controller found for {domain}")
			return []

		ldap_server, ldap_session = self.conn.init_ldap_session(server)
		gpo = self._get_single_gpo(identity, domain, ldap_session, "[Get-GPLink]")
		if not gpo:
			return []

		guid = _attribute(gpo, 'name')
		display_name = _attribute(gpo, 'displayName')

		search_scope = ldap3.SUBTREE
		if scope == SCOPE_TARGET:
			searchbase = target
			search_scope = ldap3.BASE
		elif scope == SCOPE_DOMAIN:
			searchbase = domain2dn(domain)
		elif scope == SCOPE_SITES:
			forest_dn = naming_context(ldap_server, "rootDomainNamingContext") or domain2dn(domain)
			configuration_dn = naming_context(ldap_server, "configurationNamingContext") or "CN=Configuration,%s" % (forest_dn)
			searchbase = "CN=Sites,%s" % (configuration_dn)
		else:
			searchbase = naming_context(ldap_server, "rootDomainNamingContext") or domain2dn(domain)
			gc_server = server
			if not is_global_catalog(ldap_server):
				forest = dn2domain(searchbase)
				gc_server = self.conn.find_global_catalog(forest)
				if not gc_server:
					logging.warning(f"[Get-GPLink] {server} is not a global catalog and none was found for {forest}")
					return []
				logging.warning(f"[Get-GPLink] {server} is not a global catalog. Using {gc_server} instead")
			ldap_server, ldap_session = self.conn.init_ldap_session(gc_server, use_gc=True)

		ldap_filter = f"(gPLink=*{escape_filter_chars(guid)}*)"
		logging.debug(f"[Get-GPLink] Searching {searchbase} with filter {ldap_filter}")
		try:
			entries = ldap_session.extend.standard.paged_search(
				searchbase,
				ldap_filter,
				search_scope=search_scope,
				attributes=GPLINK_PROPERTIES,
				paged_size=1000,
				generator=False
			)
		except ldap3.core.exceptions.LDAPNoSuchObjectResult:
			logging.error(f"[Get-GPLink] {searchbase} not found")
			return []

		links = []
		for entry in entries:
			if entry.get('type', 'searchResEntry') != 'searchResEntry':
				continue
			dn = _attribute(entry, 'distinguishedName') or entry.get('dn')
			link = GPO.Helper.find_link(_attribute(entry, 'gPLink'), guid)
			if not link:
				logging.debug(f"[Get-GPLink] {dn} matched the filter but does not link {guid}")
				continue
			links.append({
				'attributes': {
					'distinguishedName': dn,
					'Domain': dn2domain(dn),
					'objectClass': entry.get('attributes', {}).get('objectClass', []),
					'GPOName': guid,
					'GPODisplayName': display_name,
					'Enabled': link['enabled'],
					'Enforced': link['enforced'],
					'Order': link['order'],
					'Scope': scope,
				}
			})

		logging.debug(f"[Get-GPLink] {len(links)} link(s) found for {guid}")
		return links

	def get_gpobackup(self, path=None, identity=None, args=None):
		"""List the backups indexed in a backup repository's manifest.xml"""
		path = args.path if hasattr(args, 'path') and args.path else path
		if args and (getattr(args, 'guid', None) or getattr(args, 'name', None)):
			identity = GPOIdentity.from_args(
				[args.guid] if getattr(args, 'guid', None) else None,
				[args.name] if getattr(args, 'name', None) else None
			)[0]

		try:
			records = GPOBackup(path).entries()
		except ManifestError as e:
			logging.error(f"[Get-GPOBackup] {str(e)}")
			return []

		if identity:
			field = 'GPOGuid' if identity.is_guid else 'GPODisplayName'
			records = [r for r in records if r.get(field, '').casefold() == identity.value.casefold()]

		return [{'attributes': record} for record in records]
