"""TLS material for the HAProxy front end."""
# Standard Library Imports
import logging
import pathlib
import shutil

# Third Party Imports

# Local Application Imports
from jenkinsstack.process import run_command

logger = logging.getLogger(__name__)

CERTIFICATES_DIR_NAME = "certificates"
SELF_SIGNED_DAYS = 365
SELF_SIGNED_KEY_SIZE = 2048


def _certificate_paths(certificates_dir, domain):
    certificates_dir = pathlib.Path(certificates_dir)
    return (
        certificates_dir / f"{domain}.key",
        certificates_dir / f"{domain}.crt",
        certificates_dir / f"{domain}.pem",
    )


def generate_self_signed(certificates_dir, domain):
    """Create a self-signed certificate and the PEM bundle HAProxy reads.

    An existing key and certificate pair is kept, so a second deployment
    does not rotate the certificate. If either half is missing the pair
    and the PEM bundle are generated again.

    Returns
    -------
    pathlib.Path
        Path of the PEM bundle.

    Raises
    ------
    subprocess.CalledProcessError
        If openssl fails.
    PrerequisiteError
        If openssl is not in the PATH.

    """
    key_path, crt_path, pem_path = _certificate_paths(certificates_dir, domain)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    if not (crt_path.exists() and key_path.exists()):
        logger.info(f"generating a self-signed certificate for {domain}")
        if pem_path.exists():
            pem_path.unlink()
        run_command(
            [
                "openssl",
                "req",
                "-x509",
                "-nodes",
                "-days",
                str(SELF_SIGNED_DAYS),
                "-newkey",
                f"rsa:{SELF_SIGNED_KEY_SIZE}",
                "-keyout",
                str(key_path),
                "-out",
                str(crt_path),
                "-subj",
                f"/C=US/ST=State/L=City/O=Organization/CN={domain}",
            ]
        )
    if not pem_path.exists():
        with open(pem_path, "w") as pem_target:
            for part in (crt_path, key_path):
                with open(part, "r") as part_source:
                    pem_target.write(part_source.read())
        pem_path.chmod(0o600)
    return pem_path


def copy_corporate(source_dir, certificates_dir, domain):
    """Copy the corporate certificate files for domain.

    Missing files are reported but do not stop the deployment.

    Returns
    -------
    list of pathlib.Path
        The files copied.

    """
    copied = list()
    pathlib.Path(certificates_dir).mkdir(parents=True, exist_ok=True)
    for path in _certificate_paths(certificates_dir, domain):
        source = pathlib.Path(source_dir, path.name)
        if not source.exists():
            logger.warning(f"corporate certificate {source} not found, skip")
            continue
        shutil.copyfile(source, path)
        copied.append(path)
    return copied


def prepare(environment, deploy_dir):
    """Provide the certificates the deployment needs, if any.

    Returns
    -------
    list of pathlib.Path
        The certificate files now present.

    """
    if not environment.ssl_enabled:
        logger.debug("ssl disabled, no certificates needed")
        return list()
    certificates_dir = pathlib.Path(deploy_dir, CERTIFICATES_DIR_NAME)
    if environment.generate_self_signed:
        generate_self_signed(certificates_dir, environment.domain)
        return [
            path
            for path in _certificate_paths(certificates_dir, environment.domain)
            if path.exists()
        ]
    return copy_corporate(
        environment.ssl_cert_source_path, certificates_dir, environment.domain
    )
