"""
babylon.js engine adapter.

Babylon binds its material uniforms by name, so its material nodes are
compiled with mangle=False: only their main is renamed. Babylon adds its
own #version line, so assembled programs omit it.
"""

from typing import List, Optional

from ..core.engine import EngineAdapter
from ..core.graph import EngineNodeType, Node, NodeProperty, UniformDecl
from ..transformer.sections import MergeOptions
from .material import MATERIAL_HANDLER, material_node

BABYLON_PRESERVE = {
    'viewProjection', 'normalMatrix', 'world', 'time', 'Scene',
    # Attributes
    'position', 'normal', 'uv',
    # Varyings
    'vPositionW', 'vNormalW', 'vMainUV1',
    # Material info
    'vAmbientInfos', 'vOpacityInfos', 'vEmissiveInfos', 'vLightmapInfos',
    'vReflectivityInfos', 'vMicroSurfaceSamplerInfos', 'vReflectionInfos',
    'vReflectionFilteringInfo', 'vReflectionPosition', 'vReflectionSize',
    'vBumpInfos', 'vAlbedoInfos', 'vTangentSpaceParams',
    'vReflectionMicrosurfaceInfos', 'vReflectionColor', 'vAlbedoColor',
    'vLightingIntensity', 'pointSize', 'vReflectivityColor', 'vEmissiveColor',
    'visibility', 'vMetallicReflectanceFactors', 'vMetallicReflectanceInfos',
    # Texture matrices
    'albedoMatrix', 'ambientMatrix', 'opacityMatrix', 'emissiveMatrix',
    'lightmapMatrix', 'reflectivityMatrix', 'microSurfaceSamplerMatrix',
    'bumpMatrix', 'reflectionMatrix', 'metallicReflectanceMatrix', 'detailMatrix',
    # Clear coat, anisotropy, sheen
    'vClearCoatParams', 'vClearCoatRefractionParams', 'vClearCoatInfos',
    'clearCoatMatrix', 'clearCoatRoughnessMatrix', 'vClearCoatBumpInfos',
    'vClearCoatTangentSpaceParams', 'clearCoatBumpMatrix', 'vClearCoatTintParams',
    'clearCoatColorAtDistance', 'vClearCoatTintInfos', 'clearCoatTintMatrix',
    'vAnisotropy', 'vAnisotropyInfos', 'anisotropyMatrix', 'vSheenColor',
    'vSheenRoughness', 'vSheenInfos', 'sheenMatrix', 'sheenRoughnessMatrix',
    # Refraction and sub-surface
    'vRefractionMicrosurfaceInfos', 'vRefractionFilteringInfo', 'vRefractionInfos',
    'refractionMatrix', 'vThicknessInfos', 'thicknessMatrix', 'vThicknessParam',
    'vDiffusionDistance', 'vTintColor', 'vSubSurfaceIntensity',
    'scatteringDiffusionProfile', 'vDetailInfos',
    # Scene and lights
    'vEyePosition', 'vAmbientColor', 'vCameraInfos',
    'Light0', 'Light1', 'Light2', 'Light3', 'light0', 'light1', 'light2', 'light3',
    'vLightData0', 'vLightDiffuse0', 'vLightSpecular0', 'vLightFalloff0',
    'vSphericalL00', 'vSphericalL1_1', 'vSphericalL10', 'vSphericalL11',
    'vSphericalL2_2', 'vSphericalL2_1', 'vSphericalL20', 'vSphericalL21',
    'vSphericalL22',
    # Samplers
    'albedoSampler', 'bumpSampler', 'environmentBrdfSampler', 'reflectionSampler',
}

PHYSICAL_PROPERTIES = [
    NodeProperty('Color', 'albedoColor', 'rgb', 'uniform_vAlbedoColor'),
    NodeProperty('Texture', 'albedoTexture', 'texture', 'filler_albedoSampler'),
    NodeProperty('Bump Map', 'bumpTexture', 'texture', 'filler_bumpSampler'),
    NodeProperty('Metalness', 'metallic', 'number'),
    NodeProperty('Roughness', 'roughness', 'number'),
    NodeProperty('Env Map', 'environmentTexture', 'samplerCube'),
    NodeProperty('Reflection Texture', 'reflectionTexture', 'samplerCube'),
    NodeProperty('Refraction Texture', 'refractionTexture', 'samplerCube'),
    NodeProperty('Index Of Refraction', 'indexOfRefraction', 'number'),
    NodeProperty('Alpha', 'alpha', 'number'),
    NodeProperty('Direct Intensity', 'directIntensity', 'number'),
    NodeProperty('Environment Intensity', 'environmentIntensity', 'number'),
    NodeProperty('Camera Exposure', 'cameraExposure', 'number'),
    NodeProperty('Camera Contrast', 'cameraContrast', 'number'),
    NodeProperty('Micro Surface', 'microSurface', 'number'),
    NodeProperty('Reflectivity Color', 'reflectivityColor', 'rgb'),
]


def physical_node(id: str, name: str, stage: str, next_stage_node_id: Optional[str] = None,
                  uniforms: Optional[List[UniformDecl]] = None) -> Node:
    return material_node(id, name, EngineNodeType.PHYSICAL, stage, PHYSICAL_PROPERTIES,
                         next_stage_node_id, uniforms, mangle=False)


def babylon_engine() -> EngineAdapter:
    return EngineAdapter(
        name='babylon',
        preserve=set(BABYLON_PRESERVE),
        handlers={EngineNodeType.PHYSICAL: MATERIAL_HANDLER},
        merge_options=MergeOptions(include_precisions=True, include_version=False),
    )
