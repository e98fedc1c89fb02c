"""Texts staged into the guest root before the chroot runs.

``SETUP_TEMPLATE`` is a Jinja2 template with a fixed set of fields:
``dist``, ``rhn_user``, ``rhn_password``, ``root_password`` and
``nameserver``. Users may replace it with ``--prep-template``; a replacement
sees the same fields. ``CLOUD_CONFIG`` and ``DS_IDENTIFY`` are static.
"""

from __future__ import annotations

import shlex
from typing import Optional

from jinja2 import Environment, StrictUndefined, TemplateError

from qcow2ova.config.settings import get_setting
from qcow2ova.storage.exceptions import Qcow2OvaError


class TemplateRenderError(Qcow2OvaError):
    """A setup script template could not be rendered."""


_env = Environment(
    undefined=StrictUndefined,
    keep_trailing_newline=True,
    autoescape=False,
)
_env.filters["shquote"] = lambda value: shlex.quote(str(value))


SETUP_TEMPLATE = """\
#!/usr/bin/env bash
set -o errexit
set -o nounset
set -o pipefail

mv /etc/resolv.conf /etc/resolv.conf.orig | true
echo "nameserver {{ nameserver }}" | tee /etc/resolv.conf
{% if dist == "rhel" %}
subscription-manager register --force --auto-attach --username={{ rhn_user | shquote }} --password={{ rhn_password | shquote }}
{% endif %}
yum update -y && yum install -y yum-utils
yum install -y cloud-init
ln -s /usr/lib/systemd/system/cloud-init-local.service /etc/systemd/system/multi-user.target.wants/cloud-init-local.service
ln -s /usr/lib/systemd/system/cloud-init.service /etc/systemd/system/multi-user.target.wants/cloud-init.service
ln -s /usr/lib/systemd/system/cloud-config.service /etc/systemd/system/multi-user.target.wants/cloud-config.service
ln -s /usr/lib/systemd/system/cloud-final.service /etc/systemd/system/multi-user.target.wants/cloud-final.service
rm -rf /etc/systemd/system/multi-user.target.wants/firewalld.service
rpm -vih --nodeps http://public.dhe.ibm.com/software/server/POWER/Linux/yum/download/ibm-power-repo-latest.noarch.rpm
sed -i 's/^more \\/opt\\/ibm\\/lop\\/notice/#more \\/opt\\/ibm\\/lop\\/notice/g' /opt/ibm/lop/configure
echo 'y' | /opt/ibm/lop/configure
# Advance Toolchain repository is too slow to be usable here
yum-config-manager --disable Advance_Toolchain
yum install powerpc-utils librtas DynamicRM devices.chrp.base.ServiceRM rsct.opt.storagerm rsct.core rsct.basic rsct.core src -y
yum install -y device-mapper-multipath
cat <<EOF > /etc/multipath.conf
defaults {
    user_friendly_names yes
    verbosity 6
    polling_interval 10
    max_polling_interval 50
    reassign_maps yes
    failback immediate
    rr_min_io 2000
    no_path_retry 10
    checker_timeout 30
    find_multipaths smart
}
EOF
sed -i 's/GRUB_TIMEOUT=.*$/GRUB_TIMEOUT=60/g' /etc/default/grub
sed -i 's/GRUB_CMDLINE_LINUX=.*$/GRUB_CMDLINE_LINUX="console=tty0 console=hvc0,115200n8  biosdevname=0  crashkernel=auto rd.shell rd.debug rd.driver.pre=dm_multipath log_buf_len=1M "/g' /etc/default/grub
echo 'force_drivers+=" dm-multipath "' >/etc/dracut.conf.d/10-mp.conf
dracut --regenerate-all --force
for kernel in $(rpm -q kernel | sort -V | sed 's/kernel-//')
do
	echo "Generating initramfs for kernel version: ${kernel}"
	dracut --kver ${kernel} --force --add multipath --include /etc/multipath /etc/multipath --include /etc/multipath.conf /etc/multipath.conf
done
grub2-mkconfig -o /boot/grub2/grub.cfg
rm -rf /etc/sysconfig/network-scripts/ifcfg-eth0
{% if root_password %}
echo {{ root_password | shquote }} | passwd root --stdin
{% endif %}
{% if dist == "rhel" %}
subscription-manager unregister
subscription-manager clean
{% endif %}

# Remove the ibm repositories used for the rsct installation
rpm -e ibm-power-repo-*.noarch

mv /etc/resolv.conf.orig /etc/resolv.conf | true
touch /.autorelabel
"""

CLOUD_CONFIG = """\
users:
 - default

disable_root: 0
ssh_pwauth:   0

mount_default_fields: [~, ~, 'auto', 'defaults,nofail,x-systemd.requires=cloud-init.service', '0', '2']
resize_rootfs_tmp: /dev
ssh_deletekeys:   1
ssh_genkeytypes:  ~
syslog_fix_perms: ~
disable_vmware_customization: false

cloud_init_modules:
 - disk_setup
 - migrator
 - bootcmd
 - write-files
 - growpart
 - resizefs
 - set_hostname
 - update_hostname
 - update_etc_hosts
 - rsyslog
 - users-groups
 - ssh

cloud_config_modules:
 - mounts
 - locale
 - set-passwords
 - rh_subscription
 - yum-add-repo
 - package-update-upgrade-install
 - timezone
 - puppet
 - chef
 - salt-minion
 - mcollective
 - disable-ec2-metadata
 - runcmd

cloud_final_modules:
 - rightscale_userdata
 - scripts-per-once
 - scripts-per-boot
 - scripts-per-instance
 - scripts-user
 - ssh-authkey-fingerprints
 - keys-to-console
 - phone-home
 - final-message
 - power-state-change
 - reset_rmc

system_info:
  default_user:
    name: cloud-user
    lock_passwd: true
    gecos: Cloud User
    groups: [adm, systemd-journal]
    sudo: ["ALL=(ALL) NOPASSWD:ALL"]
    shell: /bin/bash
  distro: rhel
  paths:
    cloud_dir: /var/lib/cloud
    templates_dir: /etc/cloud/templates
  ssh_svcname: sshd

datasource_list: [ ConfigDrive, NoCloud, None ]
datasource:
  ConfigDrive:
    dsmode: local

# Network config is disabled after deployment, it breaks multipath root disks
write_files:
- path: /usr/local/bin/disable_cloud_init_nw.sh
  permissions: 0755
  owner: root
  content: |
    #!/usr/bin/env bash
    set -e
    cat <<EOF > /etc/cloud/cloud.cfg.d/01_disable_cloud_nw.cfg
    #cloud-config
    network:
      config: disabled
    EOF

runcmd:
    - bash /usr/local/bin/disable_cloud_init_nw.sh

# vim:syntax=yaml
"""

DS_IDENTIFY = "policy: search,found=all,maybe=all,notfound=disabled\n"


def render_setup_script(
    dist: str,
    rhn_user: Optional[str] = None,
    rhn_password: Optional[str] = None,
    root_password: Optional[str] = None,
    template: Optional[str] = None,
    nameserver: Optional[str] = None,
) -> str:
    """Render the guest setup script.

    Args:
        dist: Distro name ("rhel" turns on subscription handling)
        rhn_user: Registration user for rhel
        rhn_password: Registration password for rhel
        root_password: Root password; the passwd line is omitted when empty
        template: Replacement template text, defaults to SETUP_TEMPLATE
        nameserver: Resolver used while the script runs

    Raises:
        TemplateRenderError: If the template is malformed or needs a field
            that is not provided
    """
    try:
        return _env.from_string(template or SETUP_TEMPLATE).render(
            dist=dist,
            rhn_user=rhn_user or "",
            rhn_password=rhn_password or "",
            root_password=root_password or "",
            nameserver=nameserver or get_setting("nameserver", "9.9.9.9"),
        )
    except TemplateError as error:
        raise TemplateRenderError(
            f"error while rendering the setup script template: {error}"
        ) from error
