from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

"""Sheet schema catalog.

Static description of the RVTools sheets the merge understands: which sheets
exist, which one is the anchor, the mandatory columns of each, and the header
aliases emitted by older export-tool versions (e.g. ``vInfoVMName`` for
``VM``). The catalog is built once per process by ``default_catalog()`` and
passed to every component; nothing mutates it afterwards.
"""

__all__ = [
    "ANCHOR_SHEET",
    "HOST_COLUMN",
    "HOST_SHEET",
    "OS_CONFIG_COLUMN",
    "SOURCE_COLUMN",
    "VM_UUID_COLUMN",
    "SheetSchema",
    "SheetSchemaCatalog",
    "default_catalog",
]

ANCHOR_SHEET = "vInfo"
HOST_SHEET = "vHost"

VM_COLUMN = "VM"
VM_UUID_COLUMN = "VM UUID"
HOST_COLUMN = "Host"
OS_CONFIG_COLUMN = "OS according to the configuration file"
SOURCE_COLUMN = "Source File"


@dataclass(frozen=True)
class SheetSchema:
    name: str
    is_required: bool
    mandatory_columns: tuple[str, ...]
    header_aliases: Mapping[str, str] = field(default_factory=dict)


class SheetSchemaCatalog:
    """Read-only lookup over a fixed set of SheetSchema entries.

    Sheet names are matched case-insensitively (RVTools versions differ in
    casing); header names and aliases are matched exactly.
    """

    def __init__(
        self,
        schemas: Iterable[SheetSchema],
        anchor_sheet: str = ANCHOR_SHEET,
        empty_check_exclusions: Iterable[str] = (),
    ) -> None:
        ordered = list(schemas)
        self._schemas: Mapping[str, SheetSchema] = MappingProxyType(
            {s.name.lower(): s for s in ordered}
        )
        self._order: tuple[str, ...] = tuple(s.name for s in ordered)
        if anchor_sheet.lower() not in self._schemas:
            raise ValueError(f"anchor sheet '{anchor_sheet}' is not part of the catalog")
        self._anchor = self._schemas[anchor_sheet.lower()].name
        self._empty_check_exclusions = frozenset(empty_check_exclusions)

    def _get(self, sheet_name: str) -> SheetSchema | None:
        return self._schemas.get(sheet_name.lower())

    @property
    def anchor_sheet(self) -> str:
        return self._anchor

    @property
    def sheet_names(self) -> tuple[str, ...]:
        """Catalog sheet names in processing order (anchor first)."""
        return self._order

    @property
    def empty_check_exclusions(self) -> frozenset[str]:
        """Mandatory columns that are not part of the empty-value row check."""
        return self._empty_check_exclusions

    def is_known_sheet(self, sheet_name: str) -> bool:
        return self._get(sheet_name) is not None

    def is_required_sheet(self, sheet_name: str) -> bool:
        schema = self._get(sheet_name)
        return schema is not None and schema.is_required

    def is_anchor(self, sheet_name: str) -> bool:
        return sheet_name.lower() == self._anchor.lower()

    def schema(self, sheet_name: str) -> SheetSchema | None:
        return self._get(sheet_name)

    def resolve_sheet_name(self, sheet_name: str) -> str:
        """Catalog spelling of a sheet name, or the name itself when unknown."""
        schema = self._get(sheet_name)
        return schema.name if schema is not None else sheet_name

    def mandatory_columns(self, sheet_name: str) -> tuple[str, ...]:
        schema = self._get(sheet_name)
        return schema.mandatory_columns if schema is not None else ()

    def canonical_name(self, sheet_name: str, header: str) -> str:
        """Alias-resolved column name; unmapped headers are returned unchanged."""
        schema = self._get(sheet_name)
        if schema is None:
            return header
        return schema.header_aliases.get(header, header)


_VINFO_MANDATORY = (
    VM_UUID_COLUMN,
    "Template",
    "SRM Placeholder",
    "Powerstate",
    VM_COLUMN,
    "CPUs",
    "Memory",
    "In Use MiB",
    OS_CONFIG_COLUMN,
    "Creation Date",
    "NICs",
    "Disks",
    "Provisioned MiB",
)

_VINFO_ALIASES = {
    "vInfoVMName": VM_COLUMN,
    "vInfoUUID": VM_UUID_COLUMN,
    "vInfoPowerstate": "Powerstate",
    "vInfoTemplate": "Template",
    "vInfoGuestHostName": "DNS Name",
    "vInfoCPUs": "CPUs",
    "vInfoMemory": "Memory",
    "vInfoProvisioned": "Provisioned MiB",
    "vInfoInUse": "In Use MiB",
    "vInfoDataCenter": "Datacenter",
    "vInfoCluster": "Cluster",
    "vInfoHost": HOST_COLUMN,
    "vInfoSRMPlaceHolder": "SRM Placeholder",
    "vInfoOSTools": "OS according to the VMware Tools",
    "vInfoOS": OS_CONFIG_COLUMN,
    "vInfoPrimaryIPAddress": "Primary IP Address",
    "vInfoResourcepool": "Resource pool",
    "vInfoFolder": "Folder",
    "vInfoCreateDate": "Creation Date",
    "vInfoNICs": "NICs",
    "vInfoNumVirtualDisks": "Disks",
}
_VINFO_ALIASES.update({f"vInfoNetwork{n}": f"Network #{n}" for n in range(1, 9)})

_VHOST_MANDATORY = (
    HOST_COLUMN,
    "Datacenter",
    "Cluster",
    "CPU Model",
    "Speed",
    "# CPU",
    "Cores per CPU",
    "# Cores",
    "CPU usage %",
    "# Memory",
    "Memory usage %",
)

_VHOST_ALIASES = {
    "vHostName": HOST_COLUMN,
    "vHostDatacenter": "Datacenter",
    "vHostCluster": "Cluster",
    "vHostvSANFaultDomainName": "vSAN Fault Domain Name",
    "vHostCpuModel": "CPU Model",
    "vHostCpuMhz": "Speed",
    "vHostNumCpu": "# CPU",
    "vHostCoresPerCPU": "Cores per CPU",
    "vHostNumCpuCores": "# Cores",
    "vHostOverallCpuUsage": "CPU usage %",
    "vHostMemorySize": "# Memory",
    "vHostOverallMemoryUsage": "Memory usage %",
    "vHostvCPUs": "# vCPUs",
    "vHostVCPUsPerCore": "vCPUs per Core",
}

_VPARTITION_MANDATORY = (VM_UUID_COLUMN, VM_COLUMN, "Disk", "Capacity MiB", "Consumed MiB")

_VPARTITION_ALIASES = {
    "vPartitionDisk": "Disk",
    "vPartitionVMName": VM_COLUMN,
    "vPartitionUUID": VM_UUID_COLUMN,
    "vPartitionConsumedMiB": "Consumed MiB",
    "vPartitionCapacityMiB": "Capacity MiB",
}

_VMEMORY_MANDATORY = (VM_UUID_COLUMN, VM_COLUMN, "Size MiB", "Reservation")

_VMEMORY_ALIASES = {
    "vMemoryVMName": VM_COLUMN,
    "vMemoryUUID": VM_UUID_COLUMN,
    "vMemorySizeMiB": "Size MiB",
    "vMemoryReservation": "Reservation",
}


def default_catalog() -> SheetSchemaCatalog:
    """Catalog of the RVTools sheets supported by the merge."""
    return SheetSchemaCatalog(
        [
            SheetSchema(ANCHOR_SHEET, True, _VINFO_MANDATORY, MappingProxyType(dict(_VINFO_ALIASES))),
            SheetSchema(HOST_SHEET, False, _VHOST_MANDATORY, MappingProxyType(dict(_VHOST_ALIASES))),
            SheetSchema("vPartition", False, _VPARTITION_MANDATORY, MappingProxyType(dict(_VPARTITION_ALIASES))),
            SheetSchema("vMemory", False, _VMEMORY_MANDATORY, MappingProxyType(dict(_VMEMORY_ALIASES))),
        ],
        anchor_sheet=ANCHOR_SHEET,
        # Checked by the domain rules instead
        empty_check_exclusions=(OS_CONFIG_COLUMN,),
    )
