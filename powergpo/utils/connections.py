#!/usr/bin/env python3
from impacket.smbconnection import SMBConnection, SessionError

from powergpo.utils.helpers import (
	host2ip,
	is_ipaddress,
	is_valid_fqdn,
	get_principal_dc_address,
	get_global_catalog_address,
)
from powergpo.utils.constants import (
	LDAP_PORT,
	LDAPS_PORT,
	GC_PORT,
	GC_LDAPS_PORT,
	SMB_PORTS,
	LDAP_ERROR_STATUS,
)
import ssl
import ldap3
import logging

class CONNECTION:
	def __init__(self, args):
		self.args = args
		self.username = args.username
		self.password = args.password
		self.domain = args.domain
		self.lmhash = args.lmhash
		self.nthash = args.nthash
		self.hashes = args.hashes
		self.use_kerberos = args.use_kerberos
		self.use_simple_auth = args.use_simple_auth
		self.use_ldap = args.use_ldap
		self.use_ldaps = args.use_ldaps
		self.port = args.port
		self.auth_aes_key = args.auth_aes_key
		if self.auth_aes_key is not None and self.use_kerberos is False:
			self.use_kerberos = True
		self.no_pass = args.no_pass
		self.stack_trace = args.stack_trace
		self.proto = None

		if args.nameserver is None and is_ipaddress(args.ldap_address):
			logging.debug(f"Using {args.ldap_address} as nameserver")
			self.nameserver = args.ldap_address
		elif args.nameserver and is_ipaddress(args.nameserver):
			self.nameserver = args.nameserver
		else:
			self.nameserver = None
		self.use_system_ns = args.use_system_ns

		self.auth_method = ldap3.NTLM
		if self.use_simple_auth:
			self.auth_method = ldap3.SIMPLE
		elif self.use_kerberos:
			self.auth_method = ldap3.SASL

		self.ldap_address = args.ldap_address
		self.dc_ip = args.dc_ip if args.dc_ip else self.ldap_address
		self.kdcHost = self.dc_ip

		# if no protocol is specified, use ldaps
		if not self.use_ldap and not self.use_ldaps:
			self.use_ldaps = True

		try:
			if ldap3.SIGN and ldap3.ENCRYPT:
				self.sign_and_seal_supported = True
		except AttributeError:
			self.sign_and_seal_supported = False
			logging.debug('LDAP sign and seal are not supported')

		try:
			if ldap3.TLS_CHANNEL_BINDING:
				self.tls_channel_binding_supported = True
		except AttributeError:
			self.tls_channel_binding_supported = False
			logging.debug('TLS channel binding is not supported')

		self._ldap_sessions = {}
		self._smb_sessions = {}

	def get_domain(self):
		return self.domain

	def get_proto(self):
		return self.proto

	def get_nameserver(self):
		return self.nameserver

	def who_am_i(self):
		return "%s\\%s" % (self.domain, self.username)

	def find_domain_controller(self, domain=None):
		"""Locate a domain controller for domain through DNS, or None"""
		domain = domain or self.domain
		dc = get_principal_dc_address(domain, self.nameserver, use_system_ns=self.use_system_ns)
		if dc:
			logging.debug(f"Found domain controller {dc} for {domain}")
		return dc

	def find_global_catalog(self, forest):
		"""Locate a global catalog server for forest through DNS, or None"""
		gc = get_global_catalog_address(forest, self.nameserver, use_system_ns=self.use_system_ns)
		if gc:
			logging.debug(f"Found global catalog {gc} for {forest}")
		return gc

	def _resolve_target(self, host):
		if self.use_kerberos or is_ipaddress(host):
			return host
		if is_valid_fqdn(host):
			address = host2ip(host, self.nameserver, 3, True, use_system_ns=self.use_system_ns)
			if not address:
				raise ConnectionError(f"Couldn't resolve {host}")
			return address
		return host

	def init_ldap_session(self, ldap_address=None, use_gc=False):
		"""
		Return a bound (ldap3.Server, ldap3.Connection) for ldap_address,
		reusing an open session to the same host and port family.
		"""
		ldap_address = ldap_address or self.ldap_address
		key = (ldap_address.lower(), use_gc)
		if key in self._ldap_sessions:
			ldap_server, ldap_session = self._ldap_sessions[key]
			if not ldap_session.closed:
				return ldap_server, ldap_session
			del self._ldap_sessions[key]

		target = self._resolve_target(ldap_address)
		ldap_server, ldap_session = self.init_ldap_connection(target, self.use_ldaps, use_gc=use_gc, auth_method=self.auth_method)
		self._ldap_sessions[key] = (ldap_server, ldap_session)
		return ldap_server, ldap_session

	def init_ldap_connection(self, target, tls, use_gc=False, seal_and_sign=False, tls_channel_binding=False, auth_method=ldap3.NTLM):
		ldap_server_kwargs = {
			"host": target,
			"get_info": ldap3.DSA,
			"allowed_referral_hosts": [('*', True)],
			"mode": ldap3.IP_V4_PREFERRED,
		}

		if tls:
			ldap_server_kwargs["use_ssl"] = True
			ldap_server_kwargs["tls"] = ldap3.Tls(validate=ssl.CERT_NONE)
			if use_gc:
				self.proto = "GCssl"
				ldap_server_kwargs["port"] = GC_LDAPS_PORT
			else:
				self.proto = "LDAPS"
				ldap_server_kwargs["port"] = LDAPS_PORT if not self.port else self.port
		else:
			ldap_server_kwargs["use_ssl"] = False
			if use_gc:
				self.proto = "GC"
				ldap_server_kwargs["port"] = GC_PORT
			else:
				self.proto = "LDAP"
				ldap_server_kwargs["port"] = LDAP_PORT if not self.port else self.port

		ldap_server = ldap3.Server(**ldap_server_kwargs)

		if auth_method == ldap3.NTLM:
			user = '%s\\%s' % (self.domain, self.username)
		else:
			user = '{}@{}'.format(self.username, self.domain)

		ldap_connection_kwargs = {
			"user": user,
			"raise_exceptions": True,
			"authentication": auth_method
		}
		logging.debug("Authentication: {}, User: {}".format(auth_method, user))

		if seal_and_sign:
			logging.debug("Using seal and sign")
			ldap_connection_kwargs["session_security"] = ldap3.ENCRYPT
		elif tls_channel_binding:
			logging.debug("Using channel binding")
			ldap_connection_kwargs["channel_binding"] = ldap3.TLS_CHANNEL_BINDING

		logging.debug("Connecting to %s, Port: %s, SSL: %s" % (ldap_server_kwargs["host"], ldap_server_kwargs["port"], ldap_server_kwargs["use_ssl"]))
		if auth_method == ldap3.SASL:
			ldap_connection_kwargs["sasl_mechanism"] = ldap3.KERBEROS
		elif self.hashes is not None:
			ldap_connection_kwargs["password"] = '{}:{}'.format(self.lmhash, self.nthash)
		elif self.password is not None:
			ldap_connection_kwargs["password"] = self.password

		ldap_session = ldap3.Connection(ldap_server, **ldap_connection_kwargs)
		try:
			bind = ldap_session.bind()
		except ldap3.core.exceptions.LDAPInvalidCredentialsResult:
			if 'AcceptSecurityContext error, data 80090346' in str(ldap_session.result) and tls and self.tls_channel_binding_supported and not tls_channel_binding:
				logging.warning("Channel binding is enforced!")
				return self.init_ldap_connection(target, tls, use_gc, tls_channel_binding=True, auth_method=auth_method)
			raise
		except ldap3.core.exceptions.LDAPStrongerAuthRequiredResult:
			logging.warning("LDAP Signing is enforced!")
			if self.sign_and_seal_supported and not tls and not seal_and_sign:
				return self.init_ldap_connection(target, tls, use_gc, seal_and_sign=True, auth_method=auth_method)
			raise

		if not bind:
			description = ldap_session.result.get('description')
			message = str(ldap_session.result.get('message', ''))
			error_code = message.split(",")[2].replace("data", "").strip() if message.count(",") >= 2 else None
			error_status = LDAP_ERROR_STATUS.get(error_code)
			if error_status:
				raise ldap3.core.exceptions.LDAPBindError("Bind not successful - %s [%s]" % (description, error_status))
			raise ldap3.core.exceptions.LDAPBindError(f"Bind not successful - {message or description}")

		logging.debug("Bind SUCCESS!")
		return ldap_server, ldap_session

	def init_smb_session(self, host, timeout=10):
		"""Return an authenticated SMBConnection to host, reusing an open one"""
		key = host.lower()
		if key in self._smb_sessions:
			return self._smb_sessions[key]

		target = self._resolve_target(host)
		for port in SMB_PORTS:
			try:
				logging.debug(f"[SMB] Attempting connection to {host}:{port}")
				conn = SMBConnection(host if self.use_kerberos else target, target, sess_port=port, timeout=timeout)

				if self.use_kerberos:
					conn.kerberosLogin(self.username, self.password, self.domain, self.lmhash, self.nthash, self.auth_aes_key, kdcHost=self.kdcHost, useCache=self.no_pass)
				else:
					conn.login(self.username, self.password, self.domain, self.lmhash, self.nthash)

				logging.debug(f"[SMB] Successfully connected to {host}:{port}")
				self._smb_sessions[key] = conn
				return conn
			except OSError as e:
				if port != SMB_PORTS[-1]:
					logging.debug(f"[SMB] Port {port} failed for {host}, trying next port: {str(e)}")
					continue
				raise
			except SessionError as e:
				logging.debug(f"[SMB] Authentication failed to {host}:{port}: {str(e)}")
				raise

		raise ConnectionError(f"Failed to establish SMB connection to {host} on any port")

	def close(self):
		for ldap_server, ldap_session in self._ldap_sessions.values():
			try:
				ldap_session.unbind()
			except ldap3.core.exceptions.LDAPException as e:
				logging.debug(f"Error closing LDAP session to {ldap_server.host}: {e}")
		self._ldap_sessions = {}

		for host, conn in self._smb_sessions.items():
			try:
				conn.logoff()
			except (SessionError, OSError) as e:
				logging.debug(f"Error closing SMB session to {host}: {e}")
		self._smb_sessions = {}
