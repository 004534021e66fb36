#!/usr/bin/env python3
import re
import logging
import chardet

from powergpo.utils.helpers import normalize_guid, is_valid_guid
from powergpo.utils.constants import (
	VERSION_USER,
	VERSION_COMPUTER,
	VERSION_BOTH,
	VERSION_TYPES,
	GPLINK_DISABLED,
	GPLINK_ENFORCED,
)

class GPOIdentity:
	"""
	A GPO reference, either by GUID or by display name. Exactly one of the
	two is set; build instances with from_guid() or from_name().
	"""
	GUID = 'guid'
	NAME = 'name'

	def __init__(self, kind, value):
		if kind not in (self.GUID, self.NAME):
			raise ValueError(f"Unknown identity kind: {kind}")
		if not value:
			raise ValueError("GPO identity cannot be empty")
		self.kind = kind
		self.value = normalize_guid(value) if kind == self.GUID else value

	@classmethod
	def from_guid(cls, guid):
		return cls(cls.GUID, guid)

	@classmethod
	def from_name(cls, name):
		return cls(cls.NAME, name)

	@classmethod
	def from_args(cls, guids=None, names=None):
		if guids and names:
			raise ValueError("GUID and Name are mutually exclusive")
		if guids:
			return [cls.from_guid(g) for g in guids]
		return [cls.from_name(n) for n in (names or [])]

	@property
	def is_guid(self):
		return self.kind == self.GUID

	def __eq__(self, other):
		return isinstance(other, GPOIdentity) and self.kind == other.kind and self.value == other.value

	def __hash__(self):
		return hash((self.kind, self.value))

	def __str__(self):
		return self.value

	def __repr__(self):
		return f"GPOIdentity({self.kind}={self.value!r})"

class GPOVersion:
	"""
	versionNumber of a GPO: user revision in the high 16 bits, computer
	revision in the low 16 bits.
	"""
	FIELD_MASK = 0xFFFF
	FIELD_BITS = 16

	def __init__(self, user=0, computer=0):
		for field in (user, computer):
			if not 0 <= field <= self.FIELD_MASK:
				raise ValueError(f"Version field out of range: {field}")
		self.user = user
		self.computer = computer

	@classmethod
	def from_int(cls, value):
		value = int(value) & 0xFFFFFFFF
		return cls(value >> cls.FIELD_BITS, value & cls.FIELD_MASK)

	def to_int(self):
		return (self.user << self.FIELD_BITS) + self.computer

	def to_directory(self):
		# versionNumber is a signed 32-bit INTEGER in the directory
		value = self.to_int()
		return value - 0x100000000 if value & 0x80000000 else value

	@classmethod
	def _bump(cls, field, label):
		if field == cls.FIELD_MASK:
			logging.warning(f"[GPOVersion] {label} version is at {cls.FIELD_MASK}, wrapping to 0")
		return (field + 1) & cls.FIELD_MASK

	def increment(self, version_type=VERSION_BOTH):
		if version_type not in VERSION_TYPES:
			raise ValueError(f"Invalid version type: {version_type}. Valid options are: {', '.join(VERSION_TYPES)}")

		user, computer = self.user, self.computer
		if version_type in (VERSION_USER, VERSION_BOTH):
			user = self._bump(user, VERSION_USER)
		if version_type in (VERSION_COMPUTER, VERSION_BOTH):
			computer = self._bump(computer, VERSION_COMPUTER)
		return GPOVersion(user, computer)

	def __eq__(self, other):
		return isinstance(other, GPOVersion) and self.to_int() == other.to_int()

	def __repr__(self):
		return f"GPOVersion(user={self.user}, computer={self.computer})"

	def __str__(self):
		return str(self.to_int())

class GPO:
	class Helper:
		VERSION_RE = re.compile(r'^(?P<key>[ \t]*Version[ \t]*=[ \t]*)(?P<value>-?\d+)', re.I | re.M)
		GPLINK_RE = re.compile(r'\[LDAP://(?P<dn>[^;\]]+);(?P<flags>\d+)\]', re.I)

		@staticmethod
		def decode_content(content):
			"""Decode GPT.INI bytes, returns (text, encoding)"""
			try:
				return content.decode('ascii'), 'ascii'
			except UnicodeDecodeError:
				pass
			encoding = chardet.detect(content)["encoding"]
			if not encoding:
				raise ValueError("GPT.INI content cannot be decoded")
			logging.debug(f"[GPO] GPT.INI decoded as {encoding}")
			return content.decode(encoding), encoding

		@staticmethod
		def read_gpt_version(text):
			"""Return the integer on the Version= line, or None"""
			match = GPO.Helper.VERSION_RE.search(text)
			if not match:
				return None
			return int(match.group('value'))

		@staticmethod
		def set_gpt_version(text, version):
			"""Rewrite the Version= line, leaving every other character untouched"""
			if not GPO.Helper.VERSION_RE.search(text):
				raise ValueError("No Version entry in GPT.INI")
			return GPO.Helper.VERSION_RE.sub(lambda m: f"{m.group('key')}{int(version)}", text, count=1)

		@staticmethod
		def parse_gplink(gplink):
			"""
			Parse a gPLink value into a list of links in the order they
			appear in the attribute:
			[{'dn': ..., 'guid': ..., 'enabled': bool, 'enforced': bool, 'order': n}]
			"""
			links = []
			if not gplink:
				return links
			if isinstance(gplink, list):
				gplink = ''.join(str(v) for v in gplink)
			for order, match in enumerate(GPO.Helper.GPLINK_RE.finditer(gplink), start=1):
				flags = int(match.group('flags'))
				guid = None
				cn = re.search(r'cn=(\{[0-9a-fA-F-]{36}\})', match.group('dn'), re.I)
				if cn and is_valid_guid(cn.group(1)):
					guid = normalize_guid(cn.group(1))
				links.append({
					'dn': match.group('dn'),
					'guid': guid,
					'enabled': not bool(flags & GPLINK_DISABLED),
					'enforced': bool(flags & GPLINK_ENFORCED),
					'order': order,
				})
			return links

		@staticmethod
		def find_link(gplink, guid):
			guid = normalize_guid(guid)
			for link in GPO.Helper.parse_gplink(gplink):
				if link['guid'] == guid:
					return link
			return None
