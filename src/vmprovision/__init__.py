"""Provision managed Proxmox VMs from templates and enrol them with Puppet."""

__version__ = "0.1.0"
