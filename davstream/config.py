import json
import logging
import os
from fnmatch import fnmatch
from typing import Any
from typing import Dict
from typing import Optional

"""
Connection parameters for get_davclient, from the environment or from
a config file.

The config file is JSON (or YAML, if pyyaml is installed) holding a
dict of sections:

    {
        "default": {"inherits": "nextcloud", "webdav_url": "https://dav.example.com/files/me/"},
        "nextcloud": {"webdav_user": "me", "webdav_pass": "secret"},
        "all": {"contains": ["default", "backup_*"]}
    }
"""

log = logging.getLogger("davstream")

## keys in a config section, and the client parameter they map to
SECTION_KEYS = {
    "webdav_url": "url",
    "webdav_user": "username",
    "webdav_username": "username",
    "webdav_pass": "password",
    "webdav_password": "password",
    "webdav_proxy": "proxy",
    "webdav_timeout": "timeout",
}

## environment variables, and the client parameter they map to
ENVIRONMENT_KEYS = {
    "WEBDAV_URL": "url",
    "WEBDAV_USERNAME": "username",
    "WEBDAV_PASSWORD": "password",
}


def expand_config_section(config, section="default", blacklist=None):
    """
    In the "normal" case, will return [ section ]

    We allow:

    * * includes all sections in config file
    * "Meta"-sections in the config file with the keyword "contains" followed by a list of section names
    * Recursive "meta"-sections
    * Glob patterns (backup_* for all sections starting with backup_)
    * Glob patterns in "meta"-sections
    """
    if section == "*":
        return [x for x in config if not config[x].get("disable", False)]

    ## If it's not a glob-pattern ...
    if set(section).isdisjoint(set("[*?")):
        ## If it's referring to a "meta section" with the "contains" keyword
        if "contains" in config[section]:
            results = []
            if not blacklist:
                blacklist = set()
            blacklist.add(section)
            for subsection in config[section]["contains"]:
                if subsection not in results and subsection not in blacklist:
                    for recursivesubsection in expand_config_section(
                        config, subsection, blacklist
                    ):
                        if recursivesubsection not in results:
                            results.append(recursivesubsection)
            return results
        else:
            ## Disabled sections should be ignored
            if config[section].get("disable", False):
                return []
            return [section]
    ## section name is a glob pattern
    matching_sections = [x for x in config if fnmatch(x, section)]
    results = []
    for s in matching_sections:
        if set(s).isdisjoint(set("[*?")):
            for expanded in expand_config_section(config, s):
                if expanded not in results:
                    results.append(expanded)
        elif s not in results:
            ## Section names shouldn't contain []?* ... but in case they do ... don't recurse
            results.append(s)
    return results


def config_section(config, section="default"):
    """The section, with the sections it inherits from filled in below it"""
    if section in config and "inherits" in config[section]:
        ret = config_section(config, config[section]["inherits"])
    else:
        ret = {}
    if section in config:
        ret.update(config[section])
    return ret


def read_config(fn, interactive_error=False):
    if not fn:
        cfgdir = f"{os.environ.get('HOME', '/')}/.config/"
        for config_file in (
            f"{cfgdir}/davstream/webdav.conf",
            f"{cfgdir}/davstream/webdav.yaml",
            f"{cfgdir}/davstream/webdav.json",
            "/etc/davstream/webdav.conf",
        ):
            cfg = read_config(config_file)
            if cfg:
                return cfg
        return None

    try:
        try:
            with open(fn, "rb") as config_file:
                return json.load(config_file)
        except json.decoder.JSONDecodeError:
            ## yaml is an optional dependency
            try:
                import yaml
            except ImportError:
                log.error(
                    f"config file {fn} exists but is not valid json, and pyyaml is not installed."
                )
                return {}
            try:
                with open(fn, "rb") as config_file:
                    return yaml.safe_load(config_file)
            except yaml.YAMLError:
                log.error(
                    f"config file {fn} exists but is neither valid json nor yaml.  Check the syntax."
                )
    except FileNotFoundError:
        log.info(f"no config file found at {fn}")
    except ValueError:
        if interactive_error:
            log.error(
                "error in config file.  Be aware that the interactive configuration will ignore and overwrite the current broken config file",
                exc_info=True,
            )
        else:
            log.error("error in config file.  It will be ignored", exc_info=True)
    return {}


def connection_params(
    url: Optional[str] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    config_file: Optional[str] = None,
    section_name: Optional[str] = None,
    environment: bool = True,
    check_config_file: bool = True,
) -> Dict[str, Any]:
    """
    The client parameters found, in this order of precedence:

    * the parameters given
    * environment variables WEBDAV_URL, WEBDAV_USERNAME, WEBDAV_PASSWORD
    * the config file (WEBDAV_CONFIG_FILE, or the default locations),
      section section_name (WEBDAV_CONFIG_SECTION, or "default")
    """
    params = {
        k: v
        for k, v in (("url", url), ("username", username), ("password", password))
        if v is not None
    }

    if environment:
        for env_key, key in ENVIRONMENT_KEYS.items():
            if key not in params and os.environ.get(env_key):
                params[key] = os.environ[env_key]
        if not config_file:
            config_file = os.environ.get("WEBDAV_CONFIG_FILE")
        if not section_name:
            section_name = os.environ.get("WEBDAV_CONFIG_SECTION")

    if check_config_file:
        cfg = read_config(config_file)
        if cfg:
            section = config_section(cfg, section_name or "default")
            for cfg_key, key in SECTION_KEYS.items():
                if key not in params and section.get(cfg_key):
                    params[key] = section[cfg_key]
            if "timeout" in params:
                params["timeout"] = float(params["timeout"])
    return params
