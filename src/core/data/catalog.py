"""
Command catalog — the per-distribution command sequences for each phase.

Pure data plus one builder. Every phase maps a target id to the ordered
list of command dicts to run there; database phases are keyed by
``<phase>:<engine>``. Supporting a new release is a new entry in
``TARGETS`` and in the phase tables, never a new code branch.

Command text may contain placeholders that are filled in from the
installer config at build time:

    {conf.Install.Root}        {conf.Install.Source}      {conf.Install.SourceBranch}
    {conf.Install.OS.User}     {conf.Install.OS.Group}    {conf.Install.Version}
    {conf.Install.Admin.User}  {conf.Install.Admin.Email} {conf.Install.Admin.Pass}
    {conf.Install.DB.Name}     {conf.Install.DB.User}     {conf.Install.DB.Pass}
    {dbAdmin}  {envFile}  {tmpdir}  {cloneURL}  {releaseURL}
    {yarnGPG}  {yarnRepo}  {nodeURL}

A command dict may also carry ``when``: the name of a ``CONDITIONS``
entry. The command is only built when that condition holds for the
config.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

from src.core.config.loader import ENV_OVERRIDES
from src.core.models.command import Command
from src.core.models.config import InstallerConfig
from src.core.models.package import CommandPackage, load_commands
from src.core.observability.leveled import LeveledLogger
from src.core.observability.redact import Redactor

logger = logging.getLogger(__name__)


class UnknownPhaseError(KeyError):
    """Raised when no commands exist for a phase (or phase + DB engine)."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unknown phase"


# ── Targets ─────────────────────────────────────────────────────

# id → (distro, release, os, shell)
TARGETS: dict[str, tuple[str, str, str, str]] = {
    "ubuntu:22.04": ("ubuntu", "22.04", "linux", "bash"),
    "ubuntu:24.04": ("ubuntu", "24.04", "linux", "bash"),
    "debian:12": ("debian", "12", "linux", "bash"),
}

PHASES = (
    "bootstrap",
    "installerprep",
    "installdb",
    "installdbclient",
    "startdb",
    "prepdb",
    "prepdjango",
    "createsettings",
    "setupdojo",
)

DB_PHASES = frozenset({"installdb", "installdbclient", "startdb", "prepdb"})

DB_ENGINES = ("postgresql", "mysql")

# ``when`` name → predicate over the config
CONDITIONS: dict[str, Callable[[InstallerConfig], bool]] = {
    "source_install": lambda c: c.install.source_install,
    "release_install": lambda c: not c.install.source_install,
    "drop_db": lambda c: c.install.db.drop,
    "sample_data": lambda c: c.install.sample_data,
}


def _cmd(text: str, error_message: str, fatal: bool = True, timeout: float = 0, **extra: Any) -> dict:
    return {"text": text, "error_message": error_message, "fatal": fatal, "timeout": timeout, **extra}


_APT = "DEBIAN_FRONTEND=noninteractive apt-get"
_APP = "{conf.Install.Root}/{conf.Install.Source}"
_IN_APP = "cd " + _APP + " && source ../bin/activate && "

# ── bootstrap ───────────────────────────────────────────────────

_APT_BOOTSTRAP = [
    _cmd(f"{_APT} update", "Unable to update apt database"),
    _cmd(f"{_APT} -y upgrade", "Unable to upgrade OS packages with apt"),
    _cmd(
        f'{_APT} -y -o Dpkg::Options::="--force-confdef" -o Dpkg::Options::="--force-confold" '
        "install python3 python3-virtualenv ca-certificates curl gnupg git sudo",
        "Unable to install prerequisites for installer via apt",
    ),
]

# ── installerprep ───────────────────────────────────────────────


def _installer_prep(mysql_client_lib: str) -> list[dict]:
    return [
        _cmd("curl -sS {yarnGPG} | apt-key add -", "Unable to obtain the gpg key for Yarn"),
        _cmd(
            'echo -n "{yarnRepo}" > /etc/apt/sources.list.d/yarn.list',
            "Unable to add yarn repo as an apt source",
        ),
        _cmd(f"{_APT} update", "Unable to update apt database"),
        _cmd(
            f"{_APT} -y install sudo {mysql_client_lib}",
            "Unable to install sudo and MySQL client library",
        ),
        _cmd("curl -sL {nodeURL} | bash - ", "Unable to install nodejs"),
        _cmd(
            f"{_APT} install -y apt-transport-https libjpeg-dev gcc libssl-dev python3-dev "
            "python3-pip python3-virtualenv yarn build-essential expect libcurl4-openssl-dev",
            "Installing OS packages with apt failed",
        ),
    ]


# ── database ────────────────────────────────────────────────────

_INSTALL_POSTGRES = [
    _cmd(
        f"{_APT} install -y libpq-dev postgresql postgresql-contrib postgresql-client-common",
        "Unable to install PostgreSQL",
    ),
]


def _install_mysql(server: str, client_lib: str) -> list[dict]:
    return [_cmd(f"{_APT} install -y {server} {client_lib}", "Unable to install MySQL")]


def _install_pg_client(version: str) -> list[dict]:
    return [
        _cmd(f"{_APT} install -y postgresql-client-{version}", "Unable to install PostgreSQL client"),
        _cmd("/usr/sbin/groupadd -f postgres", "Unable to add postgres group"),
        # useradd exits 9 when the user already exists
        _cmd(
            "/usr/sbin/useradd -s /bin/bash -m -g postgres postgres",
            "Unable to add postgres user",
            fatal=False,
        ),
    ]


def _install_mysql_client(client: str) -> list[dict]:
    return [_cmd(f"{_APT} install -y {client}", "Unable to install MySQL client")]


_START_POSTGRES = [
    _cmd("/usr/sbin/service postgresql start", "Unable to start PostgreSQL", timeout=120),
]


def _start_mysql(service: str) -> list[dict]:
    return [_cmd(f"service {service} start", "Unable to start MySQL", timeout=120)]


_PREP_POSTGRES = [
    _cmd('{dbAdmin} -c "SELECT 1;"', "Unable to connect to the configured PostgreSQL database", timeout=60),
    _cmd(
        '{dbAdmin} -c "DROP DATABASE IF EXISTS {conf.Install.DB.Name};"',
        "Unable to drop the existing PostgreSQL database",
        when="drop_db",
    ),
    _cmd(
        "{dbAdmin} -tAc \"SELECT 1 FROM pg_database WHERE datname='{conf.Install.DB.Name}'\" | grep -q 1 || "
        '{dbAdmin} -c "CREATE DATABASE {conf.Install.DB.Name};"',
        "Unable to create a new PostgreSQL database for DefectDojo",
    ),
    _cmd(
        "{dbAdmin} -tAc \"SELECT 1 FROM pg_roles WHERE rolname='{conf.Install.DB.User}'\" | grep -q 1 && "
        "{dbAdmin} -c \"ALTER USER {conf.Install.DB.User} WITH ENCRYPTED PASSWORD '{conf.Install.DB.Pass}';\" || "
        "{dbAdmin} -c \"CREATE USER {conf.Install.DB.User} WITH ENCRYPTED PASSWORD '{conf.Install.DB.Pass}';\"",
        "Unable to create a database user for DefectDojo",
    ),
    _cmd(
        '{dbAdmin} -c "GRANT ALL PRIVILEGES ON DATABASE {conf.Install.DB.Name} TO {conf.Install.DB.User};"',
        "Unable to grant database privileges to the DefectDojo user",
    ),
    _cmd(
        '{dbAdmin} -c "ALTER DATABASE {conf.Install.DB.Name} OWNER TO {conf.Install.DB.User};"',
        "Unable to make the DefectDojo user the database owner",
    ),
]

_PREP_MYSQL = [
    _cmd('{dbAdmin} -e "SELECT 1;"', "Unable to connect to the configured MySQL database", timeout=60),
    _cmd(
        '{dbAdmin} -e "DROP DATABASE IF EXISTS {conf.Install.DB.Name};"',
        "Unable to drop the existing MySQL database",
        when="drop_db",
    ),
    _cmd(
        '{dbAdmin} -e "CREATE DATABASE IF NOT EXISTS {conf.Install.DB.Name} CHARACTER SET UTF8;"',
        "Unable to create a new MySQL database for DefectDojo",
    ),
    # Expected to fail on a fresh server
    _cmd(
        "{dbAdmin} -e \"DROP USER IF EXISTS '{conf.Install.DB.User}'@'localhost', '{conf.Install.DB.User}'@'%';\"",
        "Unable to delete existing database user for DefectDojo",
        fatal=False,
    ),
    _cmd(
        "{dbAdmin} -e \"CREATE USER '{conf.Install.DB.User}'@'%' IDENTIFIED BY '{conf.Install.DB.Pass}';\"",
        "Unable to create a database user for DefectDojo",
    ),
    _cmd(
        "{dbAdmin} -e \"GRANT ALL PRIVILEGES ON {conf.Install.DB.Name}.* TO '{conf.Install.DB.User}'@'%'; "
        'FLUSH PRIVILEGES;"',
        "Unable to grant database privileges to the DefectDojo user",
    ),
]


# ── application ─────────────────────────────────────────────────

_TARBALL = "{tmpdir}/dojo-v{conf.Install.Version}.tar.gz"

_PREP_DJANGO = [
    _cmd(
        "python3 -m virtualenv --python=/usr/bin/python3 {conf.Install.Root}",
        "Unable to setup virtualenv for DefectDojo",
        before_text="Creating the virtualenv and fetching the application source",
    ),
    _cmd(
        "git clone --depth 1 --branch {conf.Install.SourceBranch} {cloneURL} " + _APP,
        "Unable to download the DefectDojo source",
        when="source_install",
    ),
    _cmd(
        "mkdir -p {tmpdir} && curl -sSfL -o " + _TARBALL + " {releaseURL}{conf.Install.Version}.tar.gz",
        "Unable to download the DefectDojo release",
        timeout=120,
        when="release_install",
    ),
    _cmd(
        "mkdir -p " + _APP + " && tar -xzf " + _TARBALL + " --strip-components=1 -C " + _APP,
        "Unable to extract the DefectDojo release",
        when="release_install",
    ),
    _cmd(
        "{conf.Install.Root}/bin/python3 -m pip install --upgrade pip",
        "Unable to upgrade pip in the virtualenv",
    ),
    _cmd(
        "{conf.Install.Root}/bin/pip3 install -r " + _APP + "/requirements.txt",
        "Unable to install Python3 modules for DefectDojo",
    ),
    _cmd("mkdir -p {conf.Install.Root}/logs", "Unable to create a directory for logs"),
    _cmd("/usr/sbin/groupadd -f {conf.Install.OS.Group}", "Unable to create a group for DefectDojo OS user"),
    _cmd(
        "id {conf.Install.OS.User} &>/dev/null; if [ $? -ne 0 ]; then useradd -s /bin/bash -m -g "
        "{conf.Install.OS.Group} {conf.Install.OS.User}; fi",
        "Unable to create an OS user for DefectDojo",
    ),
    _cmd(
        "chown -R {conf.Install.OS.User}:{conf.Install.OS.Group} {conf.Install.Root}",
        "Unable to change ownership of the DefectDojo directory",
    ),
]

ENV_FILE = _APP + "/dojo/settings/.env.prod"

_CREATE_SETTINGS = [
    _cmd(
        "cat > " + ENV_FILE + " <<'DOJO_ENV'\n{envFile}\nDOJO_ENV",
        "Unable to create .env.prod file for settings.py configuration",
    ),
    _cmd(
        "chown {conf.Install.OS.User}:{conf.Install.OS.Group} " + ENV_FILE + " && chmod 640 " + ENV_FILE,
        "Unable to change ownership of the .env.prod file",
    ),
    _cmd(
        "ln -sfn " + _APP + "/dojo/settings/ {conf.Install.Root}/customizations",
        "Unable to link the settings directory",
    ),
    _cmd(
        "echo '# Add customizations here' > {conf.Install.Root}/customizations/local_settings.py",
        "Unable to create local_settings.py",
    ),
    _cmd(
        "chown {conf.Install.OS.User}:{conf.Install.OS.Group} " + _APP + "/dojo/settings/settings.py",
        "Unable to change ownership of settings.py file",
    ),
]

_SETUP_DOJO = [
    _cmd(_IN_APP + "python3 manage.py makemigrations dojo", "Failed during makemigrations dojo"),
    _cmd(_IN_APP + "python3 manage.py migrate", "Failed during database migrate"),
    _cmd(
        _IN_APP + 'python3 manage.py createsuperuser --noinput '
        '--username="{conf.Install.Admin.User}" --email="{conf.Install.Admin.Email}"',
        "Failed while creating DefectDojo superuser",
    ),
    _cmd(
        _IN_APP + _APP + "/setup-superuser.expect "
        '{conf.Install.Admin.User} "{conf.Install.Admin.Pass}"',
        "Failed while setting the password for the DefectDojo superuser",
    ),
    _cmd(
        _IN_APP + "python3 manage.py loaddata system_settings initial_banner_conf product_type "
        "test_type development_environment benchmark_type benchmark_category benchmark_requirement "
        "language_type objects_review regulation initial_surveys role",
        "Failed while the loading data for a default install",
    ),
    _cmd(
        _IN_APP + "python3 manage.py loaddata defect_dojo_sample_data",
        "Failed while loading the sample data",
        when="sample_data",
    ),
    _cmd(_IN_APP + "python3 manage.py migrate_textquestions", "Failed while loading default survey questions"),
    _cmd(_IN_APP + "python3 manage.py buildwatson", "Failed while running buildwatson"),
    _cmd(_IN_APP + "python3 manage.py installwatson", "Failed while running installwatson"),
    _cmd(_IN_APP + "python3 manage.py initialize_test_types", "Failed to initialize test_types"),
    _cmd(_IN_APP + "python3 manage.py initialize_permissions", "Failed to initialize permissions"),
    _cmd("cd " + _APP + "/components && yarn", "Failed while running yarn"),
    _cmd(_IN_APP + "python3 manage.py collectstatic --noinput", "Failed while running collectstatic"),
    _cmd(
        "chown -R {conf.Install.OS.User}:{conf.Install.OS.Group} {conf.Install.Root}",
        "Unable to change ownership of the DefectDojo directory",
        after_text="DefectDojo setup complete",
    ),
]

# ── Catalog ─────────────────────────────────────────────────────

CATALOG: dict[str, dict[str, list[dict]]] = {
    "bootstrap": {
        "ubuntu:22.04": _APT_BOOTSTRAP,
        "ubuntu:24.04": _APT_BOOTSTRAP,
        "debian:12": _APT_BOOTSTRAP,
    },
    "installerprep": {
        "ubuntu:22.04": _installer_prep("libmysqlclient-dev"),
        "ubuntu:24.04": _installer_prep("libmysqlclient-dev"),
        "debian:12": _installer_prep("default-libmysqlclient-dev"),
    },
    "installdb:postgresql": {
        "ubuntu:22.04": _INSTALL_POSTGRES,
        "ubuntu:24.04": _INSTALL_POSTGRES,
        "debian:12": _INSTALL_POSTGRES,
    },
    "installdb:mysql": {
        "ubuntu:22.04": _install_mysql("mysql-server", "libmysqlclient-dev"),
        "ubuntu:24.04": _install_mysql("mysql-server", "libmysqlclient-dev"),
        "debian:12": _install_mysql("default-mysql-server", "default-libmysqlclient-dev"),
    },
    "installdbclient:postgresql": {
        "ubuntu:22.04": _install_pg_client("14"),
        "ubuntu:24.04": _install_pg_client("16"),
        "debian:12": _install_pg_client("15"),
    },
    "installdbclient:mysql": {
        "ubuntu:22.04": _install_mysql_client("mysql-client"),
        "ubuntu:24.04": _install_mysql_client("mysql-client"),
        "debian:12": _install_mysql_client("default-mysql-client"),
    },
    "startdb:postgresql": {
        "ubuntu:22.04": _START_POSTGRES,
        "ubuntu:24.04": _START_POSTGRES,
        "debian:12": _START_POSTGRES,
    },
    "startdb:mysql": {
        "ubuntu:22.04": _start_mysql("mysql"),
        "ubuntu:24.04": _start_mysql("mysql"),
        "debian:12": _start_mysql("mariadb"),
    },
    "prepdb:postgresql": {t: _PREP_POSTGRES for t in TARGETS},
    "prepdb:mysql": {t: _PREP_MYSQL for t in TARGETS},
    "prepdjango": {t: _PREP_DJANGO for t in TARGETS},
    "createsettings": {t: _CREATE_SETTINGS for t in TARGETS},
    "setupdojo": {t: _SETUP_DOJO for t in TARGETS},
}


# ── Placeholders ────────────────────────────────────────────────


def escape_shell(value: str) -> str:
    r"""Escape ``\``, ``$`` and backtick for use inside a double-quoted bash string."""
    return value.replace("\\", "\\\\").replace("$", "\\$").replace("`", "\\`")


def sql_literal(value: str, engine: str) -> str:
    """Body of a single-quoted SQL string literal for ``engine``."""
    if engine.lower() == "mysql":
        value = value.replace("\\", "\\\\")
    return value.replace("'", "''")


def database_url(config: InstallerConfig) -> str:
    """dj-database-url style URL for the application database."""
    db = config.install.db
    scheme = "mysql" if db.engine == "MySQL" else "postgres"
    return (
        f"{scheme}://{quote(db.user, safe='')}:{quote(db.password, safe='')}"
        f"@{db.host}:{db.port}/{db.name}"
    )


def render_env_file(config: InstallerConfig) -> str:
    """The application's ``.env.prod``: every settings value plus the DB URL."""
    settings = config.settings
    lines = [f"DD_DATABASE_URL={database_url(config)}"]
    for name, (section, field_name, _) in ENV_OVERRIDES.items():
        if section != "settings":
            continue
        value = getattr(settings, field_name)
        if isinstance(value, bool):
            value = "true" if value else "false"
        lines.append(f"{name}={value}")
    return "\n".join(lines)


def _db_admin(config: InstallerConfig) -> str:
    """Client invocation with rights to create databases and users."""
    db = config.install.db
    fresh_local = db.local and not db.exists
    if db.engine == "MySQL":
        if fresh_local:
            return "mysql --user=root"
        return (
            f'mysql --user={db.ruser} --password="{escape_shell(db.rpass)}" '
            f"--host={db.host} --port={db.port}"
        )
    if fresh_local:
        return "sudo -u postgres psql"
    return (
        f'PGPASSWORD="{escape_shell(db.rpass)}" psql --host={db.host} --port={db.port} '
        f"--username={db.ruser} --dbname=postgres"
    )


def placeholder_values(config: InstallerConfig) -> dict[str, str]:
    """Map every catalog placeholder to its value from ``config``."""
    install = config.install
    return {
        "{conf.Install.Root}": install.root,
        "{conf.Install.Source}": install.source,
        "{conf.Install.SourceBranch}": install.source_branch,
        "{conf.Install.Version}": install.version,
        "{conf.Install.OS.User}": install.os.user,
        "{conf.Install.OS.Group}": install.os.group,
        "{conf.Install.Admin.User}": install.admin.user,
        "{conf.Install.Admin.Email}": escape_shell(install.admin.email),
        "{conf.Install.Admin.Pass}": escape_shell(install.admin.password),
        "{conf.Install.DB.Name}": install.db.name,
        "{conf.Install.DB.User}": install.db.user,
        "{conf.Install.DB.Pass}": escape_shell(sql_literal(install.db.password, install.db.engine)),
        "{dbAdmin}": _db_admin(config),
        "{tmpdir}": config.options.tmpdir.rstrip("/") or "/",
        "{cloneURL}": config.options.clone_url,
        "{releaseURL}": config.options.release_url,
        "{yarnGPG}": config.options.yarn_gpg,
        "{yarnRepo}": config.options.yarn_repo,
        "{nodeURL}": config.options.node_url,
        # Last: the rendered file is user data and is not scanned again
        "{envFile}": render_env_file(config),
    }


def inject_values(text: str, values: dict[str, str]) -> str:
    for placeholder, value in values.items():
        if placeholder in text:
            text = text.replace(placeholder, value)
    return text


def redaction_values(config: InstallerConfig) -> list[str]:
    """Every form a config secret takes once injected into a command.

    Besides the raw value this covers the shell-escaped, SQL-quoted and
    URL-quoted forms the placeholders above produce. Longer forms of a
    secret come first so they are replaced whole.
    """
    engine = config.install.db.engine
    found: list[str] = []
    for secret in config.sensitive_values():
        forms = {
            secret,
            escape_shell(secret),
            escape_shell(sql_literal(secret, engine)),
            quote(secret, safe=""),
        }
        for form in sorted(forms, key=len, reverse=True):
            if form not in found:
                found.append(form)
    return found


# ── Builder ─────────────────────────────────────────────────────


def catalog_key(phase: str, db_engine: str | None = None) -> str:
    """The CATALOG key for ``phase``; DB phases need ``db_engine``.

    Raises:
        UnknownPhaseError: If the phase (or phase + engine) has no commands.
    """
    if phase in DB_PHASES:
        engine = (db_engine or "").lower()
        if engine not in DB_ENGINES:
            raise UnknownPhaseError(
                f"Unable to find a set of commands for the database '{db_engine}' in phase '{phase}'"
            )
        key = f"{phase}:{engine}"
    else:
        key = phase
    if key not in CATALOG:
        raise UnknownPhaseError(f"Unable to find a set of commands for the label '{phase}'")
    return key


def supported_targets(phase: str, db_engine: str | None = None) -> list[str]:
    return list(CATALOG[catalog_key(phase, db_engine)])


def build_package(
    phase: str,
    config: InstallerConfig | None = None,
    db_engine: str | None = None,
    redactor: Redactor | None = None,
    log: LeveledLogger | None = None,
) -> CommandPackage:
    """Build the CommandPackage for ``phase`` with every supported target.

    Each target gets fresh Command objects with placeholders filled in
    from ``config`` (defaults if omitted). Commands whose ``when``
    condition does not hold for ``config`` are left out. Selecting the
    host's target is left to the caller, so an unsupported host surfaces
    as a ``TargetNotFoundError`` at run time.

    Raises:
        UnknownPhaseError: Unknown phase, or DB phase with an unknown engine.
    """
    config = config or InstallerConfig()
    if db_engine is None and phase in DB_PHASES:
        db_engine = config.install.db.engine

    key = catalog_key(phase, db_engine)
    values = placeholder_values(config)

    pkg = CommandPackage(phase, redactor=redactor, log=log)
    for target_id, raw_commands in CATALOG[key].items():
        distro, release, os_name, shell = TARGETS[target_id]
        pkg.add_target(target_id, distro, release, os_name, shell)
        commands = []
        for raw in raw_commands:
            fields = dict(raw)
            when = fields.pop("when", None)
            if when is not None and not CONDITIONS[when](config):
                continue
            fields["text"] = inject_values(fields["text"], values)
            commands.append(Command.model_validate(fields))
        load_commands(pkg, commands, target_id)

    logger.debug("Built package '%s' (%s) for %d target(s)", phase, key, len(pkg.targets))
    return pkg
