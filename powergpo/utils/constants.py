#!/usr/bin/env python3

TABLE_FMT_MAP = {
	"default": "simple",
	"md": "github",
	"csv": "csv",
}

LDAP_PORT = 389
LDAPS_PORT = 636
GC_PORT = 3268
GC_LDAPS_PORT = 3269

SMB_PORTS = [445, 139]
GPT_INI = "GPT.INI"
GPT_INI_BACKUP_SUFFIX = ".bak"

MANIFEST_FILE = "manifest.xml"
MANIFEST_ENTRY_TAG = "BackupInst"
MANIFEST_ID_FIELD = "ID"
MANIFEST_PATH_FIELD = "BackupPath"

GPO_DEFAULT_PROPERTIES = [
	'name',
	'displayName',
	'distinguishedName',
	'versionNumber',
	'gPCFileSysPath',
]

GPLINK_PROPERTIES = [
	'distinguishedName',
	'gPLink',
	'gPOptions',
	'objectClass',
]

# gPLink option flags, [LDAP://<gpo dn>;<flags>]
GPLINK_DISABLED = 0x1
GPLINK_ENFORCED = 0x2

VERSION_USER = "User"
VERSION_COMPUTER = "Computer"
VERSION_BOTH = "Both"
VERSION_TYPES = [VERSION_USER, VERSION_COMPUTER, VERSION_BOTH]

SCOPE_TARGET = "Target"
SCOPE_DOMAIN = "Domain"
SCOPE_SITES = "Sites"
SCOPE_FOREST = "EntireForest"
LINK_SCOPES = [SCOPE_TARGET, SCOPE_DOMAIN, SCOPE_SITES, SCOPE_FOREST]

LDAP_ERROR_STATUS = {
	"525": "LDAP_NO_SUCH_OBJECT",
	"52e": "ERROR_LOGON_FAILURE",
	"52f": "ERROR_ACCOUNT_RESTRICTION",
	"530": "ERROR_INVALID_LOGON_HOURS",
	"531": "ERROR_INVALID_WORKSTATION",
	"532": "ERROR_PASSWORD_EXPIRED",
	"533": "ERROR_ACCOUNT_DISABLED",
	"701": "ERROR_ACCOUNT_EXPIRED",
	"773": "ERROR_PASSWORD_MUST_CHANGE",
	"775": "ERROR_ACCOUNT_LOCKED_OUT",
}
