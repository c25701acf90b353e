"""Attribute templates: the keys an admin fills in per category."""

ATTRIBUTE_TEMPLATES: dict[str, tuple[str, ...]] = {
    "CPU": (
        "Processor", "Cores", "Threads", "Base Clock Speed", "Boost Clock Speed",
        "L3 Cache", "Socket", "Chipset", "TDP", "Integrated Graphics",
        "PCIe Support", "Supported RAM Types", "Thermal Solution",
    ),
    "Motherboard": (
        "Chipset", "CPU Socket", "Memory Slots", "Maximum RAM", "Supported RAM Types",
        "Expansion Slots", "Integrated Graphics", "Audio Codec", "LAN", "M.2 Slots",
        "Form Factor", "Dimensions", "BIOS", "SATA Ports", "USB Ports",
    ),
    "RAM": (
        "Capacity", "Supported RAM Types", "Speed", "CAS Latency", "Modules",
        "Voltage", "ECC", "Rank", "Form Factor", "Interface", "Data Rate",
    ),
    "Storage": (
        "Storagetype", "capacity", "interface", "formFactor", "readSpeed",
        "writeSpeed", "cache", "enduranceTbw", "mtbf", "releaseYear",
    ),
    "GPU": (
        "GPU Processor", "CUDA Cores", "Boost Clock", "Memory", "Memory Bus",
        "Memory Bandwidth", "Stream Processors", "TDP", "Interface", "Dimensions",
        "Power Connectors", "Cooling", "API Support",
    ),
    "PSU": (
        "wattage", "formFactor", "efficiencyRating", "modular", "fanSize",
        "connectorTypes", "protections", "releaseYear",
    ),
}

_TEMPLATE_LOOKUP = {name.lower(): name for name in ATTRIBUTE_TEMPLATES}


def get_template(category: str) -> tuple[str, dict[str, str]] | None:
    """Blank attribute map for a category name (case-insensitive).

    Returns:
        Tuple of (canonical category name, {key: ""}) or None if no template exists
    """
    name = _TEMPLATE_LOOKUP.get((category or "").strip().lower())
    if name is None:
        return None
    return name, {key: "" for key in ATTRIBUTE_TEMPLATES[name]}


def all_templates() -> dict[str, dict[str, str]]:
    return {name: {key: "" for key in keys} for name, keys in ATTRIBUTE_TEMPLATES.items()}
