# SPDX-License-Identifier: GPL-3.0-or-later
"""
goal: the fixed category -> keyword table used by the keyword classifier and quoted in the inference prompt.
the declared category order matters: the classifier walks categories top to bottom and the first hit wins,
so a process matching both "development" and "system" keywords always lands in "development".
built once per run from the defaults, the enabled-category filter and any custom keywords from config.
"""

from __future__ import annotations  # lets us use string annotations before classes are defined

import logging  # for warning about custom keywords aimed at unknown categories
from collections.abc import Iterable, Iterator, Mapping  # type hints for the constructor arguments
from types import MappingProxyType  # read-only view so nobody mutates the table after construction

from algorithm.entities import Category

log = logging.getLogger("proclens.taxonomy")

# the declared order is part of the behaviour (first match wins)
DEFAULT_KEYWORDS: dict[Category, tuple[str, ...]] = {
    Category.DEVELOPMENT: (
        # IDEs & editors
        "code.exe", "vscode", "git", "node.exe", "python", "java", "npm",
        "visual studio", "devenv", "rider", "intellij", "pycharm", "webstorm",
        "sublime", "notepad++", "atom", "vim", "neovim", "emacs", "cursor",
        # build tools
        "gradle", "maven", "cmake", "msbuild", "webpack", "vite", "esbuild",
        # containers
        "docker", "podman", "containerd", "kubernetes", "kubectl", "minikube",
        # version control
        "github", "gitlab", "gitkraken", "sourcetree", "tortoisegit",
        # terminals
        "windowsterminal", "wt.exe", "alacritty", "hyper", "terminus",
        # package managers
        "yarn", "pnpm", "pip", "cargo", "composer", "nuget",
        # debuggers
        "debugger", "gdb", "lldb", "windbg",
    ),
    Category.GAMING: (
        # launchers
        "steam", "epicgameslauncher", "gog", "origin", "uplay", "ubisoft",
        "battlenet", "riotclient", "ea app", "xbox", "playnite",
        # games
        "league of legends", "valorant", "csgo", "cs2", "dota2", "fortnite",
        "minecraft", "roblox", "genshin", "apex", "overwatch", "warzone",
        "pubg", "rainbow six", "elden ring", "hogwarts", "baldur",
        # tools and peripherals
        "reshade", "msi afterburner", "rtss", "rivatuner", "fraps",
        "nvidia broadcast", "geforce", "razer", "logitech", "corsair icue",
        "steelseries", "hyperx", "roccat",
    ),
    Category.OFFICE: (
        "winword", "excel", "powerpnt", "outlook", "teams", "onenote",
        "access.exe", "publisher", "visio", "project",
        "libreoffice", "openoffice", "wps", "notion", "evernote", "obsidian",
        "todoist", "trello", "asana", "monday", "clickup", "jira",
        "confluence", "acrobat", "foxit", "sumatra", "calibre",
    ),
    Category.BROWSERS: (
        "chrome.exe", "firefox.exe", "msedge.exe", "brave.exe", "opera",
        "vivaldi", "safari", "chromium", "tor browser", "arc.exe",
        "librewolf", "waterfox", "floorp", "zen browser",
    ),
    Category.MEDIA: (
        # players
        "spotify", "vlc.exe", "mpc-hc", "mpv", "foobar", "musicbee",
        "winamp", "itunes", "amazon music", "tidal", "deezer",
        # video editing
        "premiere", "afterfx", "davinci", "vegas", "filmora", "shotcut",
        "kdenlive", "avidemux", "handbrake",
        # image editing
        "photoshop", "lightroom", "gimp", "paint.net", "krita", "inkscape",
        "affinity", "canva", "figma", "sketch",
        # audio
        "audacity", "audition", "reaper", "ableton", "fl studio",
        "cubase", "logic", "garageband", "pro tools",
        # 3D
        "blender", "maya", "3dsmax", "cinema4d", "zbrush", "substance",
        "unreal", "unity",
    ),
    Category.COMMUNICATION: (
        "discord", "slack", "telegram", "whatsapp", "skype", "zoom",
        "webex", "signal", "element", "wire", "viber", "line",
        "messenger", "google meet", "facetime", "mumble", "teamspeak",
        "ventrilo", "guilded",
    ),
    Category.DATABASE: (
        "postgres", "mysql", "mongodb", "redis", "sqlserver", "oracle",
        "sqlite", "mariadb", "cassandra", "couchdb", "elasticsearch",
        "influxdb", "neo4j", "dbeaver", "datagrip", "heidisql",
        "pgadmin", "robo3t", "mongodb compass", "tableplus",
    ),
    Category.NETWORKING: (
        "nordvpn", "expressvpn", "surfshark", "protonvpn", "mullvad",
        "wireshark", "putty", "winscp", "filezilla", "cyberduck",
        "teamviewer", "anydesk", "parsec", "moonlight", "sunshine",
        "remotedesktop", "mstsc", "realvnc", "tightvnc", "rustdesk",
        "nmap", "fiddler", "postman", "insomnia", "charles", "proxyman",
        "ngrok", "tailscale", "zerotier", "netsetman",
    ),
    Category.SECURITY: (
        "antivirus", "defender", "msmpeng", "mpcmdrun", "mpdefender",
        "nissrv", "malware", "kaspersky", "avast", "norton", "bitdefender",
        "eset", "avg", "mcafee", "sophos", "f-secure", "trendmicro",
        "keepass", "lastpass", "1password", "bitwarden", "dashlane",
        "smartscreen", "securityhealth", "comodo", "glasswire",
        "veracrypt", "truecrypt", "cryptomator", "gpg4win",
    ),
    Category.VIRTUALIZATION: (
        "vmware", "virtualbox", "hyperv", "qemu", "wsl", "wslhost",
        "vagrant", "multipass", "parallels", "proxmox", "virt-manager",
        "vmcompute", "vmms", "vmmem",
    ),
    Category.CLOUD_STORAGE: (
        "dropbox", "onedrive", "googledrive", "icloud", "mega",
        "sync.com", "pcloud", "nextcloud", "owncloud", "box",
        "spideroak", "tresorit", "resilio", "syncthing",
    ),
    Category.AI: (
        # local assistants
        "ollama", "lmstudio", "gpt4all", "koboldcpp", "text-generation",
        "oobabooga", "llamacpp", "localai",
        # notebooks
        "jupyter", "jupyterlab", "colab", "kaggle",
        # ML tooling
        "tensorboard", "mlflow", "wandb",
        # image generation
        "stable diffusion", "comfyui", "automatic1111", "invoke",
        "midjourney", "dall-e", "fooocus",
        # voice
        "whisper", "tortoise", "bark", "coqui",
    ),
    Category.STREAMING: (
        # streaming software
        "obs", "obs64", "streamlabs", "xsplit", "twitch studio",
        "nvidia shadowplay", "geforce experience", "radeon software",
        # services
        "netflix", "prime video", "disney", "hulu", "hbo max",
        "peacock", "paramount", "crunchyroll", "funimation", "plex",
        "jellyfin", "emby", "kodi",
        # game streaming
        "parsec", "moonlight", "steam link", "stadia", "xcloud",
        "geforce now", "playstation", "remote play",
    ),
    Category.SYSTEM: (
        "system", "svchost", "explorer.exe", "dwm.exe", "csrss",
        "winlogon", "services.exe", "lsass", "smss", "wininit",
        "taskhostw", "runtimebroker", "dllhost", "conhost", "sihost",
        "ctfmon", "fontdrvhost", "spoolsv", "searchhost", "searchindexer",
        "shellexperiencehost", "startmenuexperiencehost", "textinputhost",
        "applicationframehost", "systemsettings", "settingssynchost",
        "backgroundtaskhost", "gamingservices", "securityhealthsystray",
        "useroobe", "lockapp", "logonui", "dashost", "apphelp",
        "wudfhost", "wmiprvse", "msiexec", "trustedinstaller",
        "tiworker", "searchprotocol", "audiodg", "nvcontainer",
        "nvdisplay", "amdrsserv", "radeonsoft", "igfx",
        # linux / macOS daemons
        "kthreadd", "kworker", "dbus-daemon", "launchd", "kernel_task", "windowserver",
    ),
}

# every classification target in declared order (no "other")
ALL_CATEGORIES: tuple[Category, ...] = tuple(DEFAULT_KEYWORDS)


class CategoryTaxonomy:
    """Ordered, read-only category -> keywords table."""

    def __init__(
        self,
        enabled: Iterable[Category | str] | None = None,
        custom_keywords: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        wanted = self._resolve_enabled(enabled)
        table: dict[Category, tuple[str, ...]] = {}
        for category, words in DEFAULT_KEYWORDS.items():  # walk defaults so declared order survives
            if category not in wanted:
                continue
            table[category] = tuple(w.lower() for w in words)

        for raw_name, extra in (custom_keywords or {}).items():
            category = Category.parse(raw_name)
            if category is None or category is Category.OTHER:
                log.warning("ignoring custom keywords for unknown category %r", raw_name)
                continue
            if category not in table:
                log.debug("custom keywords for disabled category %s skipped", category.value)
                continue
            merged = list(table[category])
            for word in extra or ():
                w = str(word).strip().lower()
                if w and w not in merged:  # union, keeps default order first
                    merged.append(w)
            table[category] = tuple(merged)

        self._table = MappingProxyType(table)

    @staticmethod
    def _resolve_enabled(enabled: Iterable[Category | str] | None) -> set[Category]:
        if enabled is None:
            return set(ALL_CATEGORIES)
        out: set[Category] = set()
        for item in enabled:
            category = Category.parse(item)
            if category is None or category is Category.OTHER:
                log.warning("ignoring unknown enabled category %r", item)
                continue
            out.add(category)
        return out

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(self._table)

    def keywords(self, category: Category) -> tuple[str, ...]:
        return self._table.get(category, ())

    def items(self) -> Iterator[tuple[Category, tuple[str, ...]]]:
        return iter(self._table.items())

    def __contains__(self, category: object) -> bool:
        return category in self._table

    def __len__(self) -> int:
        return len(self._table)
