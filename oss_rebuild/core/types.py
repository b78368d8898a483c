from enum import Enum

class Ecosystem(str, Enum):
    NPM = "npm"
    PYPI = "pypi"
    CRATESIO = "cratesio"
    DEBIAN = "debian"
    MAVEN = "maven"
    GO = "go"

class PipelineState(str, Enum):
    INFERRING = "inferring"
    FETCHING_UPSTREAM = "fetching_upstream"
    BUILDING = "building"
    STABILIZING = "stabilizing"
    COMPARING = "comparing"
    DONE = "done"

class RunType(str, Enum):
    SMOKETEST = "smoketest"
    ATTEST = "attest"

class AssetType(str, Enum):
    DEBUG_REBUILD = "rebuild"
    DEBUG_UPSTREAM = "upstream"
    DEBUG_LOGS = "logs"
    REBUILD = "artifact"          # stored under the target's artifact name
    DOCKERFILE = "Dockerfile"
    BUILD_INFO = "info.json"
    CONTAINER_IMAGE = "image.tgz"
    ATTESTATION_BUNDLE = "rebuild.intoto.jsonl"
    BUILD_DEFINITION = "build.yaml"
    DIFF = "diff"

class ArchiveFormat(str, Enum):
    RAW = "raw"
    TAR = "tar"
    TARGZ = "tar.gz"
    GZIP = "gzip"
    ZIP = "zip"
    AR = "ar"
