"""
three.js engine adapter.

The preserve set lists three's built-in matrices, attributes, varyings and
material uniforms, which three binds by name and the renamer must keep.
"""

from typing import List, Optional

from ..core.engine import EngineAdapter
from ..core.graph import EngineNodeType, Node, NodeProperty, UniformDecl
from ..transformer.sections import MergeOptions
from .material import MATERIAL_HANDLER, material_node

THREE_PRESERVE = {
    'viewMatrix', 'modelMatrix', 'modelViewMatrix', 'projectionMatrix',
    'normalMatrix', 'uvTransform',
    # Attributes
    'position', 'normal', 'uv', 'uv2',
    # Varyings
    'vUv', 'vUv2', 'vViewPosition', 'vNormal', 'vPosition',
    # Uniforms
    'cameraPosition', 'isOrthographic', 'diffuse', 'emissive', 'specular',
    'shininess', 'opacity', 'map', 'specularTint', 'time', 'normalScale',
    'normalMap', 'envMap', 'envMapIntensity', 'flipEnvMap', 'maxMipLevel',
    'roughnessMap',
    # Lighting
    'receiveShadow', 'ambientLightColor', 'lightProbe', 'spotLights',
    'pointLights',
    'resolution', 'color', 'image', 'gradientMap', 'brightness',
    # Physical material
    'roughness', 'metalness', 'ior', 'specularIntensity', 'clearcoat',
    'clearcoatRoughness', 'transmission', 'thickness', 'attenuationDistance',
    'attenuationTint', 'transmissionSamplerMap', 'transmissionSamplerSize',
    'displacementMap', 'displacementScale', 'displacementBias',
}

PHYSICAL_PROPERTIES = [
    NodeProperty('Color', 'color', 'rgb', 'uniform_diffuse'),
    NodeProperty('Texture', 'map', 'texture', 'filler_map'),
    NodeProperty('Normal Map', 'normalMap', 'texture', 'filler_normalMap'),
    NodeProperty('Normal Scale', 'normalScale', 'vector2'),
    NodeProperty('Metalness', 'metalness', 'number'),
    NodeProperty('Roughness', 'roughness', 'number'),
    NodeProperty('Roughness Map', 'roughnessMap', 'texture', 'filler_roughnessMap'),
    NodeProperty('Displacement Map', 'displacementMap', 'texture'),
    NodeProperty('Env Map', 'envMap', 'texture'),
    NodeProperty('Transmission', 'transmission', 'number'),
    NodeProperty('Transmission Map', 'transmissionMap', 'texture', 'filler_transmissionMap'),
    NodeProperty('Thickness', 'thickness', 'number'),
    NodeProperty('Index of Refraction', 'ior', 'number'),
    NodeProperty('Sheen', 'sheen', 'number'),
    NodeProperty('Reflectivity', 'reflectivity', 'number'),
    NodeProperty('Clearcoat', 'clearcoat', 'number'),
]

PHONG_PROPERTIES = [
    NodeProperty('Color', 'color', 'rgb', 'uniform_diffuse'),
    NodeProperty('Emissive', 'emissive', 'rgb', 'uniform_emissive'),
    NodeProperty('Emissive Map', 'emissiveMap', 'texture', 'filler_emissiveMap'),
    NodeProperty('Texture', 'map', 'texture', 'filler_map'),
    NodeProperty('Normal Map', 'normalMap', 'texture', 'filler_normalMap'),
    NodeProperty('Normal Scale', 'normalScale', 'vector2'),
    NodeProperty('Shininess', 'shininess', 'number'),
    NodeProperty('Reflectivity', 'reflectivity', 'number'),
    NodeProperty('Refraction Ratio', 'refractionRatio', 'number'),
    NodeProperty('Specular', 'specular', 'rgb', 'uniform_specular'),
    NodeProperty('Specular Map', 'specularMap', 'texture', 'filler_specularMap'),
    NodeProperty('Displacement Map', 'displacementMap', 'texture'),
    NodeProperty('Env Map', 'envMap', 'texture'),
]

TOON_PROPERTIES = [
    NodeProperty('Color', 'color', 'rgb', 'uniform_diffuse'),
    NodeProperty('Texture', 'map', 'texture', 'filler_map'),
    NodeProperty('Gradient Map', 'gradientMap', 'texture', 'filler_gradientMap'),
    NodeProperty('Normal Map', 'normalMap', 'texture', 'filler_normalMap'),
    NodeProperty('Normal Scale', 'normalScale', 'vector2'),
    NodeProperty('Displacement Map', 'displacementMap', 'texture'),
    NodeProperty('Env Map', 'envMap', 'texture'),
]


def physical_node(id: str, name: str, stage: str, next_stage_node_id: Optional[str] = None,
                  uniforms: Optional[List[UniformDecl]] = None) -> Node:
    return material_node(id, name, EngineNodeType.PHYSICAL, stage, PHYSICAL_PROPERTIES,
                         next_stage_node_id, uniforms)


def phong_node(id: str, name: str, stage: str, next_stage_node_id: Optional[str] = None) -> Node:
    return material_node(id, name, EngineNodeType.PHONG, stage, PHONG_PROPERTIES, next_stage_node_id)


def toon_node(id: str, name: str, stage: str, next_stage_node_id: Optional[str] = None) -> Node:
    return material_node(id, name, EngineNodeType.TOON, stage, TOON_PROPERTIES, next_stage_node_id)


def three_engine() -> EngineAdapter:
    return EngineAdapter(
        name='three',
        preserve=set(THREE_PRESERVE),
        handlers={
            EngineNodeType.PHYSICAL: MATERIAL_HANDLER,
            EngineNodeType.PHONG: MATERIAL_HANDLER,
            EngineNodeType.TOON: MATERIAL_HANDLER,
        },
        merge_options=MergeOptions(include_precisions=True, include_version=True),
    )
