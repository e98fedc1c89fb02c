"""OVF descriptor and volume metadata templates."""

from __future__ import annotations

from jinja2 import Environment, StrictUndefined


_env = Environment(undefined=StrictUndefined, autoescape=False)

META_TEMPLATE = """\
os-type = {{ os_type }}
architecture = {{ architecture }}
vol1-file = {{ image_name }}
vol1-type = boot"""

OVF_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<!-- generated by qcow2ova {{ tool_version }} -->
<ovf:Envelope xmlns:ovf="http://schemas.dmtf.org/ovf/envelope/1" xmlns:rasd="http://schemas.dmtf.org/wbem/wscim/1/cim-schema/2/CIM_ResourceAllocationSettingData" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance">
  <ovf:References>
    <ovf:File href="{{ volume_name | e }}" id="file1" size="{{ src_volume_size }}"/>
  </ovf:References>
  <ovf:DiskSection>
    <ovf:Info>Disk Section</ovf:Info>
    <ovf:Disk capacity="{{ target_disk_size }}" capacityAllocationUnits="byte" diskId="disk1" fileRef="file1"/>
  </ovf:DiskSection>
  <ovf:VirtualSystemCollection>
    <ovf:VirtualSystem ovf:id="vs0">
      <ovf:Name>{{ image_name | e }}</ovf:Name>
      <ovf:Info></ovf:Info>
      <ovf:ProductSection>
        <ovf:Info/>
        <ovf:Product/>
      </ovf:ProductSection>
      <ovf:OperatingSystemSection ovf:id="{{ os_id }}">
        <ovf:Info/>
        <ovf:Description>{{ os_description }}</ovf:Description>
        <ns0:architecture xmlns:ns0="ibmpvc">{{ architecture }}</ns0:architecture>
      </ovf:OperatingSystemSection>
      <ovf:VirtualHardwareSection>
        <ovf:Info>Storage resources</ovf:Info>
        <ovf:Item>
          <rasd:Description>Temporary clone for export</rasd:Description>
          <rasd:ElementName>{{ volume_name | e }}</rasd:ElementName>
          <rasd:HostResource>ovf:/disk/disk1</rasd:HostResource>
          <rasd:InstanceID>1</rasd:InstanceID>
          <rasd:ResourceType>17</rasd:ResourceType>
          <ns1:boot xmlns:ns1="ibmpvc">True</ns1:boot>
        </ovf:Item>
      </ovf:VirtualHardwareSection>
    </ovf:VirtualSystem>
    <ovf:Info/>
    <ovf:Name>{{ image_name | e }}</ovf:Name>
  </ovf:VirtualSystemCollection>
</ovf:Envelope>"""

ovf_template = _env.from_string(OVF_TEMPLATE)
meta_template = _env.from_string(META_TEMPLATE)
