"""Init-system back ends (Entware, ASUS-Merlin, launchd) and their shared helpers."""