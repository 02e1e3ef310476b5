"""Dockerfile and generation script for the local ISO builder image."""

from __future__ import annotations

DOCKERFILE = """\
FROM ubuntu:22.04

RUN apt-get update && apt-get install -y \\
    xorriso \\
    binutils \\
    grub-pc-bin \\
    grub-efi-amd64-bin \\
    mtools \\
    syslinux \\
    isolinux \\
    && apt-get clean \\
    && rm -rf /var/lib/apt/lists/*

COPY generate-iso.sh /usr/local/bin/generate-iso
RUN chmod +x /usr/local/bin/generate-iso

WORKDIR /

ENTRYPOINT ["/usr/local/bin/generate-iso"]
"""

GENERATE_ISO_SCRIPT = """\
#!/bin/bash
set -e

for arg in "$@"; do
  case $arg in
    --source=*) SOURCE="${arg#*=}" ;;
    --output=*) OUTPUT="${arg#*=}" ;;
    --label=*) LABEL="${arg#*=}" ;;
    --bootloader=*) BOOTLOADER="${arg#*=}" ;;
    --bootable=*) BOOTABLE="${arg#*=}" ;;
  esac
done

SOURCE=${SOURCE:-/lfs-source}
OUTPUT=${OUTPUT:-/output/lfs.iso}
LABEL=${LABEL:-LFS_TEST}
BOOTLOADER=${BOOTLOADER:-grub}
BOOTABLE=${BOOTABLE:-true}

echo "Creating ISO with the following parameters:"
echo "Source: $SOURCE"
echo "Output: $OUTPUT"
echo "Label: $LABEL"
echo "Bootloader: $BOOTLOADER"
echo "Bootable: $BOOTABLE"

TEMP_DIR=$(mktemp -d)
echo "Copying source files..."
mkdir -p "$TEMP_DIR/boot/grub"
cp -r "$SOURCE"/* "$TEMP_DIR"/ || echo "Warning: Source directory may be empty"

placeholder_boot_files() {
  if [ ! -f "$TEMP_DIR/boot/vmlinuz" ]; then
    echo "Creating placeholder kernel..."
    dd if=/dev/zero of="$TEMP_DIR/boot/vmlinuz" bs=1M count=5
  fi
  if [ ! -f "$TEMP_DIR/boot/initrd.img" ]; then
    echo "Creating placeholder initrd..."
    dd if=/dev/zero of="$TEMP_DIR/boot/initrd.img" bs=1M count=10
  fi
}

if [ "$BOOTABLE" = "true" ] && [ "$BOOTLOADER" = "grub" ]; then
  echo "Setting up GRUB bootloader..."
  mkdir -p "$TEMP_DIR/boot/grub/i386-pc"
  cat > "$TEMP_DIR/boot/grub/grub.cfg" << EOF
set default=0
set timeout=5
menuentry "Boot LFS System" {
    linux /boot/vmlinuz root=/dev/sr0 ro quiet
    initrd /boot/initrd.img
}
EOF
  placeholder_boot_files
  grub-mkimage -o "$TEMP_DIR/boot/grub/i386-pc/eltorito.img" -O i386-pc-eltorito \\
    -p /boot/grub biosdisk iso9660
  echo "Generating ISO with GRUB bootloader..."
  xorriso -as mkisofs -R -J -V "$LABEL" -o "$OUTPUT" \\
    -b boot/grub/i386-pc/eltorito.img -no-emul-boot -boot-load-size 4 -boot-info-table \\
    "$TEMP_DIR"
elif [ "$BOOTABLE" = "true" ] && [ "$BOOTLOADER" = "isolinux" ]; then
  echo "Setting up ISOLINUX bootloader..."
  mkdir -p "$TEMP_DIR/isolinux"
  cp /usr/lib/ISOLINUX/isolinux.bin "$TEMP_DIR/isolinux/"
  cp /usr/lib/syslinux/modules/bios/ldlinux.c32 "$TEMP_DIR/isolinux/"
  cat > "$TEMP_DIR/isolinux/isolinux.cfg" << EOF
DEFAULT linux
TIMEOUT 50
PROMPT 1
LABEL linux
  KERNEL /boot/vmlinuz
  APPEND initrd=/boot/initrd.img root=/dev/sr0 ro quiet
EOF
  placeholder_boot_files
  echo "Generating ISO with ISOLINUX bootloader..."
  xorriso -as mkisofs -R -J -V "$LABEL" -o "$OUTPUT" \\
    -b isolinux/isolinux.bin -no-emul-boot -boot-load-size 4 -boot-info-table \\
    -c isolinux/boot.cat "$TEMP_DIR"
else
  echo "Generating non-bootable ISO..."
  xorriso -as mkisofs -R -J -V "$LABEL" -o "$OUTPUT" "$TEMP_DIR"
fi

rm -rf "$TEMP_DIR"
echo "ISO creation complete: $OUTPUT"
"""
