import pytest

from tmx_codec import TiledMap

# 71x40 map, three tilesets, two base64+zlib layers
SAMPLE_MAP = """
<?xml version="1.0" encoding="UTF-8"?>
<map version="1.0" orientation="orthogonal" width="71" height="40" tilewidth="16" tileheight="16">
 <properties>
  <property name="time1" value="16"/>
  <property name="time2" value="9"/>
  <property name="time3" value="6"/>
 </properties>
 <tileset firstgid="1" name="sprites32" tilewidth="32" tileheight="32">
  <image source="../textures/sprites32.png" width="512" height="64"/>
 </tileset>
 <tileset firstgid="33" name="sprites16" tilewidth="16" tileheight="16">
  <image source="../textures/sprites16.png" width="256" height="32"/>
 </tileset>
 <tileset firstgid="65" name="stars" tilewidth="16" tileheight="16">
  <image source="../textures/stars.png" width="64" height="16"/>
 </tileset>
 <layer name="Tile Layer 3" width="71" height="40">
  <data encoding="base64" compression="zlib">
   eJzt2MsKwjAQheEKvog7r4u+/8uZhQsrTh1wwtz+DwJdhJKeJs00ywL0dR7t5j2IoO6jPbwHEVSVbKzm//p2XSWb62gX43tWyWaGGXmjt/V3l5SO3gNASFbz3asuPij7ea5r9nAZ2WxVrItnIBsZdfFcp1f7V8WzJKtsPudwlvp1b5xW2VRUNZuKa9wKe7iMbLaoi3XIRpalLv52VsE+IsvyXhFbln+MCjp+z7TP3HEP137DO2azh7pYh2xk1E+I4glYsQ1i
  </data>
 </layer>
 <layer name="Stars" width="71" height="40" opacity="0.5" visible="0">
  <data encoding="base64" compression="zlib">
   eJztl1sOhTAIRN2auv89Gf9MbC0FLK85n1dvAjNTsNtGYyf+lpXDugBjLPof5av3nFNrdX+jIfELXv8HZyec6lWsI3KWqLpn2vOR/brheMHtecW5bNWWKW/WQEuQGeS7Hqt3+HMPIm+gCpHvZeBNa3ZFvw9VADtHj56WvVmHGegPynnAXPMPPAKrQeb84fn7Rrs2z71qk7FXSU8zsyejdtZQ9R+9x/XGytNsWaqyw73cPb/0pmYrumfZztAIrq8zOkkzIfm/l7MVGYqGFwJPD+s=
  </data>
 </layer>
</map>
"""

# 2x2 map, two tilesets, literal <tile> records
SMALL_MAP = """
<?xml version="1.0" encoding="UTF-8"?>
<map version="1.0" orientation="orthogonal" width="2" height="2" tilewidth="16" tileheight="16">
 <tileset firstgid="1" name="sprites1" tilewidth="16" tileheight="16">
  <image source="../textures/sprites1.png" width="64" height="16"/>
 </tileset>
 <tileset firstgid="5" name="sprites2" tilewidth="16" tileheight="16">
  <image source="../textures/sprites2.png" width="64" height="16"/>
 </tileset>
 <layer name="layer1" width="2" height="2">
  <data>
   <tile gid="1" />
   <tile gid="0" />
   <tile gid="2" />
   <tile gid="6" />
  </data>
 </layer>
 <layer name="layer2" width="2" height="2">
  <data>
   <tile gid="2147483649" />
   <tile gid="1073741827" />
   <tile gid="536870916" />
   <tile gid="2684354574" />
  </data>
 </layer>
</map>
"""


@pytest.fixture
def sample_map() -> TiledMap:
    return TiledMap.parse(SAMPLE_MAP)


@pytest.fixture
def small_map() -> TiledMap:
    return TiledMap.parse(SMALL_MAP)


@pytest.fixture
def sample_text() -> str:
    return SAMPLE_MAP
